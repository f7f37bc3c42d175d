# lead_enricher/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from lead_enricher.config import settings
from lead_enricher.errors import StoreReadError
from lead_enricher.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client backing the durable key/value store."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=self.url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info(
                "Fast Redis client initialized successfully",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        """Ensure Redis is initialized, fallback if not"""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        """
        Fetch several keys at once; missing keys are left out.

        Raises:
            StoreReadError: If Redis could not be read, so callers never
                mistake an outage for empty data
        """
        if not keys:
            return {}
        try:
            await self._ensure_initialized()
            values = await self.client.mget(keys)
        except Exception as e:
            logger.error("Redis MGET failed", key_count=len(keys), error=str(e))
            raise StoreReadError(f"Redis read failed: {e}") from e

        return {key: value for key, value in zip(keys, values) if value is not None}

    async def set_many(self, mapping: dict[str, str]) -> bool:
        """Write several keys in one round trip."""
        if not mapping:
            return True
        try:
            await self._ensure_initialized()
            result = await self.client.mset(mapping)
            return bool(result)
        except Exception as e:
            logger.error("Redis MSET failed", key_count=len(mapping), error=str(e))
            return False

    async def delete_many(self, keys: list[str]) -> bool:
        """Delete keys - with fallback handling"""
        if not keys:
            return True
        try:
            await self._ensure_initialized()
            await self.client.delete(*keys)
            return True
        except Exception as e:
            logger.error("Redis DELETE failed", key_count=len(keys), error=str(e))
            return False

    async def scan_prefix(self, prefix: str) -> list[str]:
        """List keys starting with prefix using SCAN (non-blocking)."""
        try:
            await self._ensure_initialized()
            return [key async for key in self.client.scan_iter(match=f"{prefix}*", count=500)]
        except Exception as e:
            logger.error("Redis SCAN failed", prefix=prefix[:30], error=str(e))
            return []


# Global instance
fast_redis = FastRedisClient()
