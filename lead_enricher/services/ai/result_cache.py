"""
Result cache for Gemini lookups.

Each input item (company name or full person name) is stored under its own
key inside a namespace, as {"result": ..., "timestamp": epoch_ms}. Entries
older than the max age read as missing; cleanup_expired removes them
physically. Reads fail open: if the store cannot be read, every item is
reported missing so it gets recomputed.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.ai.prompts import NAMESPACES
from lead_enricher.services.kv_store import KeyValueStore, kv_store
from lead_enricher.utils.time_helpers import now_ms

logger = get_logger(__name__)

CACHE_PREFIX = "ai_cache"
LAST_CLEANUP_KEY = f"{CACHE_PREFIX}:last_cleanup"


def cache_key(namespace: str, item: str) -> str:
    return f"{CACHE_PREFIX}:{namespace}:{item}"


@dataclass(slots=True)
class CacheLookup:
    cached: dict[str, Any] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)


class ResultCache:
    """Persistent per-item cache shared across worker restarts."""

    def __init__(
        self,
        store: KeyValueStore,
        clock_ms: Callable[[], int] = now_ms,
        max_age_ms: int | None = None,
    ):
        self.store = store
        self.clock_ms = clock_ms
        self.max_age_ms = max_age_ms if max_age_ms is not None else settings.cache_max_age_ms()

    def _is_fresh(self, entry: Any, now: int) -> bool:
        if not isinstance(entry, dict) or "timestamp" not in entry:
            return False
        try:
            return now - int(entry["timestamp"]) < self.max_age_ms
        except (TypeError, ValueError):
            return False

    async def get_cached(self, items: list[str], namespace: str) -> CacheLookup:
        """Split items into fresh cache hits and misses."""
        try:
            keys = [cache_key(namespace, item) for item in items]
            entries = await self.store.get(keys)
            now = self.clock_ms()

            lookup = CacheLookup()
            for item, key in zip(items, keys):
                entry = entries.get(key)
                if self._is_fresh(entry, now):
                    lookup.cached[item] = entry["result"]
                else:
                    lookup.missing.append(item)

            logger.info(
                "Cache lookup completed",
                namespace=namespace,
                cached=len(lookup.cached),
                missing=len(lookup.missing),
            )
            return lookup

        except Exception as e:
            logger.error(
                "Error reading result cache",
                namespace=namespace,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CacheLookup(cached={}, missing=list(items))

    async def save_results(self, items: list[str], result_map: dict[str, Any], namespace: str) -> None:
        """Write an entry for every item that has a result; never raises."""
        try:
            timestamp = self.clock_ms()
            entries = {
                cache_key(namespace, item): {"result": result_map[item], "timestamp": timestamp}
                for item in items
                if item in result_map
            }
            if not entries:
                return

            if await self.store.set(entries):
                logger.info("Cached results", namespace=namespace, count=len(entries))
            else:
                logger.warning("Result cache write was not persisted", namespace=namespace)

        except Exception as e:
            logger.error(
                "Error saving result cache",
                namespace=namespace,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def cleanup_expired(self) -> int:
        """Remove expired entries from every namespace. Returns the count removed."""
        cleaned = 0
        try:
            now = self.clock_ms()
            for namespace in NAMESPACES:
                keys = await self.store.keys(f"{CACHE_PREFIX}:{namespace}:")
                if not keys:
                    continue

                entries = await self.store.get(keys)
                expired = [key for key in keys if not self._is_fresh(entries.get(key), now)]
                if expired and await self.store.remove(expired):
                    cleaned += len(expired)

            await self.store.set({LAST_CLEANUP_KEY: now})

            if cleaned > 0:
                logger.info("Cleaned expired cache entries", count=cleaned)

        except Exception as e:
            logger.error("Error cleaning result cache", error=str(e), error_type=type(e).__name__)

        return cleaned


# Singleton instance for application use
result_cache = ResultCache(kv_store)
