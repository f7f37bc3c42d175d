import asyncio

import pytest

from lead_enricher.errors import DailyQuotaExceeded, UnknownModelError
from lead_enricher.services.ai.models import FLASH, PRO, ModelLimits
from lead_enricher.services.ai.rate_limiter import USAGE_STATS_KEY, RateLimiter
from lead_enricher.utils.time_helpers import MS_PER_DAY, day_string


@pytest.fixture
def limiter(store, clock):
    return RateLimiter(store, clock_ms=clock, sleep=clock.sleep)


@pytest.mark.asyncio
async def test_requests_within_minute_quota_do_not_wait(limiter, clock):
    for _ in range(10):
        await limiter.acquire_slot(FLASH)

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_request_over_minute_quota_waits_for_oldest_to_expire(limiter, clock):
    for _ in range(10):
        await limiter.acquire_slot(FLASH)
        clock.advance(1000)

    await limiter.acquire_slot(FLASH)

    # oldest request is 10s old: 60s - 10s + 100ms buffer
    assert clock.sleeps == [50.1]
    status = limiter.get_quota_status()[FLASH]
    assert status["reserved_today"] == 11
    assert status["requests_last_minute"] == 10



class SharedClockSleep:
    """Sleeps that yield to other waiters before moving the shared clock."""

    def __init__(self, clock):
        self.clock = clock
        self.sleeps: list[float] = []

    async def __call__(self, seconds):
        self.sleeps.append(seconds)
        wake = self.clock.now + int(round(seconds * 1000))
        await asyncio.sleep(0)
        self.clock.now = max(self.clock.now, wake)


@pytest.mark.asyncio
async def test_concurrent_waiters_recheck_the_window_after_sleeping(store, clock):
    sleep = SharedClockSleep(clock)
    limiter = RateLimiter(
        store, clock_ms=clock, sleep=sleep, limits={FLASH: ModelLimits(rpm=2, rpd=100)}
    )
    await limiter.acquire_slot(FLASH)
    clock.advance(1000)
    await limiter.acquire_slot(FLASH)

    await asyncio.gather(limiter.acquire_slot(FLASH), limiter.acquire_slot(FLASH))

    # Both wait for the first slot; the second then waits for the next one
    assert sleep.sleeps == [59.1, 59.1, 1.0]
    assert limiter.get_quota_status()[FLASH]["requests_last_minute"] == 2
    timestamps = limiter.states[FLASH].request_timestamps
    assert timestamps[-1] - timestamps[-2] == 1000


@pytest.mark.asyncio
async def test_daily_quota_raises_and_resets_next_day(store, clock):
    limiter = RateLimiter(
        store, clock_ms=clock, sleep=clock.sleep, limits={FLASH: ModelLimits(rpm=100, rpd=2)}
    )
    await limiter.acquire_slot(FLASH)
    await limiter.acquire_slot(FLASH)

    with pytest.raises(DailyQuotaExceeded) as exc_info:
        await limiter.acquire_slot(FLASH)
    assert exc_info.value.model == FLASH
    assert exc_info.value.limit == 2

    clock.advance(MS_PER_DAY)
    await limiter.acquire_slot(FLASH)


@pytest.mark.asyncio
async def test_unknown_model_is_rejected(limiter):
    with pytest.raises(UnknownModelError):
        await limiter.acquire_slot("gemini-0.1-imaginary")


@pytest.mark.asyncio
async def test_concurrent_successes_are_all_counted(limiter, store, clock):
    await asyncio.gather(*(limiter.record_success(FLASH) for _ in range(20)))
    await limiter.record_success(PRO)

    stats = store.data[USAGE_STATS_KEY][day_string(clock.now)]
    assert stats[FLASH] == 20
    assert stats[PRO] == 1


@pytest.mark.asyncio
async def test_old_usage_days_are_pruned(limiter, store, clock):
    store.data[USAGE_STATS_KEY] = {
        "2020-01-01": {FLASH: 5},
        day_string(clock.now - 3 * MS_PER_DAY): {FLASH: 2},
    }

    await limiter.record_success(FLASH)

    stats = store.data[USAGE_STATS_KEY]
    assert "2020-01-01" not in stats
    assert day_string(clock.now - 3 * MS_PER_DAY) in stats
    assert stats[day_string(clock.now)][FLASH] == 1


@pytest.mark.asyncio
async def test_record_success_absorbs_store_failure(limiter, store):
    store.fail_writes = True

    await limiter.record_success(FLASH)

    assert not limiter.mutex.locked()


@pytest.mark.asyncio
async def test_failed_usage_read_keeps_history(redis_store, flaky_redis, clock):
    limiter = RateLimiter(redis_store, clock_ms=clock, sleep=clock.sleep)
    yesterday = day_string(clock.now - MS_PER_DAY)
    await redis_store.set({USAGE_STATS_KEY: {yesterday: {FLASH: 40}}})

    flaky_redis.failing_mgets = 1
    await limiter.record_success(FLASH)

    assert not limiter.mutex.locked()
    assert await limiter.get_usage_stats() == {yesterday: {FLASH: 40}}

    await limiter.record_success(FLASH)
    stats = await limiter.get_usage_stats()
    assert stats[yesterday] == {FLASH: 40}
    assert stats[day_string(clock.now)][FLASH] == 1


@pytest.mark.asyncio
async def test_sync_from_store_seeds_daily_counter(store, clock):
    store.data[USAGE_STATS_KEY] = {day_string(clock.now): {FLASH: 0, PRO: 100}}
    limiter = RateLimiter(store, clock_ms=clock, sleep=clock.sleep)

    await limiter.sync_from_store()

    with pytest.raises(DailyQuotaExceeded):
        await limiter.acquire_slot(PRO)
    await limiter.acquire_slot(FLASH)
