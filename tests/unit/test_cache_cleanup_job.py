import asyncio
from unittest.mock import AsyncMock

import pytest

from lead_enricher.jobs.cache_cleanup_job import CacheCleanupJob, start_cache_cleanup_scheduler
from lead_enricher.services.ai.prompts import DOMAINS
from lead_enricher.services.ai.result_cache import ResultCache


@pytest.mark.asyncio
async def test_run_cleanup_reports_deleted_entries(store, clock):
    cache = ResultCache(store, clock_ms=clock, max_age_ms=1000)
    await cache.save_results(["Acme"], {"Acme": "acme.com"}, DOMAINS)
    clock.advance(1000)

    result = await CacheCleanupJob(cache).run_cleanup()

    assert result["success"] is True
    assert result["deleted_entries"] == 1


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    job = CacheCleanupJob(AsyncMock())
    job.is_running = True

    result = await job.run_cleanup()

    assert result == {"success": False, "error": "Already running"}
    job.cache.cleanup_expired.assert_not_awaited()


@pytest.mark.asyncio
async def test_scheduler_runs_then_stops_on_cancel():
    cache = AsyncMock()
    cache.cleanup_expired.return_value = 0
    sleep = AsyncMock(side_effect=asyncio.CancelledError)

    await start_cache_cleanup_scheduler(CacheCleanupJob(cache), sleep=sleep)

    cache.cleanup_expired.assert_awaited_once()
    sleep.assert_awaited_once_with(24 * 3600)
