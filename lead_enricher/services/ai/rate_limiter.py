"""
Gemini Rate Limiter
Keeps each model under its per-minute and per-day request quotas and records
successful calls in persisted usage statistics.

Design:
- Sliding 60s window of request timestamps per model (in memory)
- Daily counter per model, reset when the UTC calendar day changes
- Slots are reserved before the call is made, so failed calls still count
  against the daily quota
- Usage stats count only successful calls and live in the durable store,
  updated under a mutex so concurrent chunk completions never lose updates

The in-memory counters are a cache of the persisted truth: sync_from_store()
seeds them after a restart.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from lead_enricher.config import settings
from lead_enricher.errors import DailyQuotaExceeded, StoreReadError, UnknownModelError
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.ai.models import MODEL_LIMITS, ModelLimits
from lead_enricher.services.ai.mutex import Mutex
from lead_enricher.services.kv_store import KeyValueStore, kv_store
from lead_enricher.utils.time_helpers import day_string, is_day_older_than, now_ms

logger = get_logger(__name__)

USAGE_STATS_KEY = "api_usage_stats"
WINDOW_MS = 60_000
WAIT_BUFFER_MS = 100


@dataclass(slots=True)
class ModelState:
    request_timestamps: list[int] = field(default_factory=list)
    daily_count: int = 0
    last_reset_day: str = ""


class RateLimiter:
    """
    Per-model quota enforcement for Gemini calls.

    Example:
        With rpm=10, the 11th acquire_slot() inside one minute sleeps until
        the oldest of the previous 10 requests is 60.1s old, then proceeds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock_ms: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        limits: dict[str, ModelLimits] | None = None,
    ):
        self.store = store
        self.clock_ms = clock_ms
        self.sleep = sleep
        self.limits = limits or MODEL_LIMITS
        self.mutex = Mutex()

        today = self._today()
        self.states: dict[str, ModelState] = {
            model: ModelState(last_reset_day=today) for model in self.limits
        }

    def _today(self) -> str:
        return day_string(self.clock_ms())

    def _state(self, model: str) -> tuple[ModelState, ModelLimits]:
        if model not in self.limits:
            raise UnknownModelError(model)
        return self.states[model], self.limits[model]

    async def acquire_slot(self, model: str) -> None:
        """
        Reserve a request slot for model, waiting if the minute window is full.

        Raises:
            DailyQuotaExceeded: If the model's daily quota is used up
            UnknownModelError: If no quota is configured for model
        """
        state, limits = self._state(model)

        # Other callers may take the freed slot while this one sleeps
        while True:
            now = self.clock_ms()
            today = day_string(now)

            if state.last_reset_day != today:
                state.daily_count = 0
                state.last_reset_day = today

            if state.daily_count >= limits.rpd:
                logger.warning(
                    "Daily quota exhausted", model=model, used=state.daily_count, limit=limits.rpd
                )
                raise DailyQuotaExceeded(model, limits.rpd)

            state.request_timestamps = [
                ts for ts in state.request_timestamps if now - ts < WINDOW_MS
            ]
            if len(state.request_timestamps) < limits.rpm:
                break

            oldest = min(state.request_timestamps)
            wait_ms = WINDOW_MS - (now - oldest) + WAIT_BUFFER_MS
            logger.info("Rate limit reached, waiting", model=model, wait_ms=wait_ms)
            await self.sleep(wait_ms / 1000)

        state.request_timestamps.append(now)
        state.daily_count += 1

    async def record_success(self, model: str) -> None:
        """Increment today's persisted success count for model."""
        async with self.mutex:
            try:
                today = self._today()
                values = await self.store.get([USAGE_STATS_KEY])
                stats = values.get(USAGE_STATS_KEY) or {}
                if not isinstance(stats, dict):
                    stats = {}

                day_stats = stats.setdefault(today, {name: 0 for name in self.limits})
                day_stats[model] = day_stats.get(model, 0) + 1

                for day in list(stats):
                    if is_day_older_than(day, today, settings.USAGE_STATS_RETENTION_DAYS):
                        del stats[day]

                await self.store.set({USAGE_STATS_KEY: stats})
                logger.info("Updated usage stats", model=model, count=day_stats[model])

            except StoreReadError as e:
                # Writing now would replace the unread history with today alone
                logger.error("Usage stats unreadable, skipping update", model=model, error=str(e))

            except Exception as e:
                logger.error(
                    "Error updating usage stats",
                    model=model,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def get_usage_stats(self) -> dict[str, dict[str, int]]:
        values = await self.store.get([USAGE_STATS_KEY])
        stats = values.get(USAGE_STATS_KEY)
        return stats if isinstance(stats, dict) else {}

    async def sync_from_store(self) -> None:
        """Seed today's in-memory daily counters from persisted usage stats."""
        try:
            today = self._today()
            day_stats = (await self.get_usage_stats()).get(today) or {}
            for model, state in self.states.items():
                persisted = int(day_stats.get(model, 0) or 0)
                if state.last_reset_day != today:
                    state.daily_count = 0
                    state.last_reset_day = today
                state.daily_count = max(state.daily_count, persisted)

            logger.info("Synchronized usage stats from store", day=today, stats=day_stats)

        except Exception as e:
            logger.error("Error synchronizing usage stats", error=str(e), error_type=type(e).__name__)

    def get_quota_status(self) -> dict[str, dict[str, Any]]:
        """Current in-memory reservation counters per model."""
        now = self.clock_ms()
        status = {}
        for model, limits in self.limits.items():
            state = self.states[model]
            used_today = state.daily_count if state.last_reset_day == day_string(now) else 0
            in_window = sum(1 for ts in state.request_timestamps if now - ts < WINDOW_MS)
            status[model] = {
                "rpm": limits.rpm,
                "rpd": limits.rpd,
                "reserved_today": used_today,
                "remaining_today": max(0, limits.rpd - used_today),
                "requests_last_minute": in_window,
            }
        return status


# Singleton instance for application use
rate_limiter = RateLimiter(kv_store)
