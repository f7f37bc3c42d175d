"""
Process-wide export status and the stuck-run watchdog.

The status lives in the durable store as `export_status` ("idle" or
"processing") plus `last_processing_start` (epoch ms). The watchdog ticks
while a run is active and flips a run stuck longer than the threshold back
to idle so the user can retry. It never interrupts the run itself.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.kv_store import KeyValueStore, kv_store
from lead_enricher.services.notifications import Notifier, notifier
from lead_enricher.utils.time_helpers import now_ms

logger = get_logger(__name__)

STATUS_KEY = "export_status"
STARTED_KEY = "last_processing_start"
RUN_KEY = "export_run_id"

IDLE = "idle"
PROCESSING = "processing"


@dataclass(slots=True)
class ExportStatus:
    status: str = IDLE
    last_processing_start: int | None = None
    run_id: str | None = None

    @property
    def is_processing(self) -> bool:
        return self.status == PROCESSING

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "last_processing_start": self.last_processing_start}


class ExportStatusTracker:
    """Reads and writes the persisted export status."""

    def __init__(self, store: KeyValueStore, clock_ms: Callable[[], int] = now_ms):
        self.store = store
        self.clock_ms = clock_ms

    async def get(self) -> ExportStatus:
        try:
            values = await self.store.get([STATUS_KEY, STARTED_KEY, RUN_KEY])
        except Exception as e:
            logger.error("Error reading export status", error=str(e), error_type=type(e).__name__)
            return ExportStatus()

        status = values.get(STATUS_KEY)
        started = values.get(STARTED_KEY)
        run_id = values.get(RUN_KEY)
        return ExportStatus(
            status=PROCESSING if status == PROCESSING else IDLE,
            last_processing_start=started if isinstance(started, int) else None,
            run_id=run_id if isinstance(run_id, str) else None,
        )

    async def mark_processing(self, run_id: str | None = None) -> int:
        started = self.clock_ms()
        if not await self.store.set({STATUS_KEY: PROCESSING, STARTED_KEY: started, RUN_KEY: run_id}):
            logger.warning("Export status was not persisted", status=PROCESSING)
        logger.info("Export status set to processing", started_at=started, run_id=run_id)
        return started

    async def mark_idle(self) -> None:
        if not await self.store.set({STATUS_KEY: IDLE, STARTED_KEY: None, RUN_KEY: None}):
            logger.warning("Export status was not persisted", status=IDLE)
        logger.info("Export status set to idle")

    def is_stuck(self, status: ExportStatus, max_processing_ms: int) -> bool:
        if not status.is_processing or status.last_processing_start is None:
            return False
        return self.clock_ms() - status.last_processing_start > max_processing_ms

    async def reset_if_stuck(self, max_processing_ms: int) -> bool:
        """Flip a run stuck beyond max_processing_ms back to idle."""
        status = await self.get()
        if not self.is_stuck(status, max_processing_ms):
            return False

        stuck_seconds = round((self.clock_ms() - status.last_processing_start) / 1000)
        logger.warning("Export stuck, auto-resetting to idle", stuck_seconds=stuck_seconds)
        await self.mark_idle()
        return True

    async def reset_on_startup(self) -> bool:
        """A fresh process cannot own a run, so any persisted run is stale."""
        status = await self.get()
        if not status.is_processing:
            return False

        logger.warning("Found stuck processing state at startup, resetting to idle")
        await self.mark_idle()
        return True


class ExportWatchdog:
    """Periodic stuck-run check armed for the duration of one run."""

    def __init__(
        self,
        tracker: ExportStatusTracker,
        notifier: Notifier,
        interval_seconds: float | None = None,
        max_processing_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.tracker = tracker
        self.notifier = notifier
        self.interval_seconds = interval_seconds or settings.EXPORT_WATCHDOG_INTERVAL_SECONDS
        self.max_processing_ms = int(
            (max_processing_seconds or settings.EXPORT_MAX_PROCESSING_SECONDS) * 1000
        )
        self.sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        if self.armed:
            return
        self._task = asyncio.create_task(self._run(), name="export-watchdog")
        logger.debug("Export watchdog armed", interval_seconds=self.interval_seconds)

    async def disarm(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Export watchdog disarmed")

    async def check_once(self) -> bool:
        """Run one watchdog tick. Returns True if the run was reset."""
        try:
            if not await self.tracker.reset_if_stuck(self.max_processing_ms):
                return False
            await self.notifier.notify(
                "Process Auto-Reset",
                "The process was automatically reset after 10 minutes of inactivity.",
            )
            return True
        except Exception as e:
            logger.error("Export watchdog check failed", error=str(e), error_type=type(e).__name__)
            return False

    async def _run(self) -> None:
        while True:
            await self.sleep(self.interval_seconds)
            if await self.check_once():
                return


# Singleton instances for application use
export_status_tracker = ExportStatusTracker(kv_store)
export_watchdog = ExportWatchdog(export_status_tracker, notifier)
