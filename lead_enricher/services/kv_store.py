"""
Durable key/value store shared by the cache, the rate limiter and the
export status.

Values are JSON documents. Reads of missing or undecodable keys come back
absent. A store outage on read raises StoreReadError so read-modify-write
callers can tell it apart from missing data; read-only callers treat it as
"no data". Failed writes report False.
"""

import json
from typing import Any, Protocol

from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    async def get(self, keys: list[str]) -> dict[str, Any]: ...

    async def set(self, mapping: dict[str, Any]) -> bool: ...

    async def remove(self, keys: list[str]) -> bool: ...

    async def keys(self, prefix: str) -> list[str]: ...


class RedisKeyValueStore:
    """KeyValueStore over the pooled Redis client."""

    def __init__(self, client: FastRedisClient | None = None):
        self.client = client or fast_redis

    async def get(self, keys: list[str]) -> dict[str, Any]:
        raw = await self.client.get_many(list(keys))
        values: dict[str, Any] = {}
        for key, payload in raw.items():
            try:
                values[key] = json.loads(payload)
            except (TypeError, ValueError):
                logger.warning("Invalid JSON value in store", key=key[:60])
        return values

    async def set(self, mapping: dict[str, Any]) -> bool:
        encoded = {key: json.dumps(value) for key, value in mapping.items()}
        return await self.client.set_many(encoded)

    async def remove(self, keys: list[str]) -> bool:
        return await self.client.delete_many(list(keys))

    async def keys(self, prefix: str) -> list[str]:
        return await self.client.scan_prefix(prefix)

    async def ping(self) -> bool:
        return await self.client.ping()


# Singleton instance for application use
kv_store = RedisKeyValueStore()
