"""
Cache Cleanup Background Job - physical removal of expired Gemini results.

Reads already treat entries older than AI_CACHE_MAX_AGE_DAYS as missing;
this job deletes them so the store does not grow without bound.

Schedule:
- Every CACHE_CLEANUP_INTERVAL_HOURS (default 24)
- First run happens immediately on start

Usage:
    # Run as a worker
    python -m lead_enricher.jobs.worker cache_cleanup

    # Or start inside the API process
    asyncio.create_task(start_cache_cleanup_scheduler())
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.ai.result_cache import ResultCache, result_cache

logger = get_logger(__name__)

RETRY_AFTER_ERROR_SECONDS = 3600


class CacheCleanupJob:
    """Runs ResultCache.cleanup_expired, guarding against overlapping runs."""

    def __init__(self, cache: ResultCache):
        self.cache = cache
        self.is_running = False
        self.last_run_time: datetime | None = None

    async def run_cleanup(self) -> dict:
        """
        Run one cleanup pass.

        Returns:
            dict: {"success": bool, "deleted_entries": int, "duration_seconds": float}
        """
        if self.is_running:
            logger.warning("Cache cleanup already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(timezone.utc)
        result: dict[str, Any] = {"success": True, "deleted_entries": 0}

        try:
            result["deleted_entries"] = await self.cache.cleanup_expired()
        except Exception as e:
            logger.error("Unexpected error in cache cleanup", error=str(e))
            result["success"] = False
            result["error"] = str(e)
        finally:
            self.is_running = False
            self.last_run_time = datetime.now(timezone.utc)

        result["duration_seconds"] = round((self.last_run_time - start_time).total_seconds(), 3)
        logger.info("Cache cleanup completed", result=result)
        return result


async def start_cache_cleanup_scheduler(
    job: CacheCleanupJob | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """Run the cleanup now and then every CACHE_CLEANUP_INTERVAL_HOURS until cancelled."""
    job = job or cache_cleanup_job
    interval_seconds = settings.CACHE_CLEANUP_INTERVAL_HOURS * 3600

    logger.info(
        "Cache cleanup scheduler STARTED",
        interval_hours=settings.CACHE_CLEANUP_INTERVAL_HOURS,
        environment=settings.environment,
    )

    while True:
        try:
            await job.run_cleanup()
            await sleep(interval_seconds)

        except asyncio.CancelledError:
            logger.info("Cache cleanup scheduler cancelled")
            break
        except Exception as e:
            logger.error("Error in cache cleanup scheduler, will retry", error=str(e))
            await sleep(RETRY_AFTER_ERROR_SECONDS)


# Singleton instance for manual triggers
cache_cleanup_job = CacheCleanupJob(result_cache)
