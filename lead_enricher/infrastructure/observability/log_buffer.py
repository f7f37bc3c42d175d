"""
Persistent debug log buffer.

Every structlog entry passes through PersistentLogBuffer.processor on its way
to the renderer and is kept in a bounded in-memory buffer. Clients can add
their own entries over HTTP. The buffer is written to the store under
LOG_KEY by a periodic flusher and once more at shutdown, so the most recent
entries survive a restart and can be downloaded as a text report.
"""

import asyncio
import json
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.kv_store import KeyValueStore, kv_store

logger = get_logger(__name__)

LOG_KEY = "debug_logs"

_ENTRY_FIELDS = {"event", "level", "logger", "timestamp", "service"}


def _iso_now() -> str:
    return datetime.now(UTC).isoformat()


def _json_safe(data: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(data, default=str))


class PersistentLogBuffer:
    """Keeps the newest max_entries log entries and persists them on flush."""

    def __init__(self, store: KeyValueStore, max_entries: int | None = None):
        self.store = store
        self.max_entries = max_entries or settings.LOG_BUFFER_MAX_ENTRIES
        self.entries: deque[dict[str, Any]] = deque(maxlen=self.max_entries)
        self.dirty = False

    def _append(self, entry: dict[str, Any]) -> None:
        self.entries.append(entry)
        self.dirty = True

    def processor(self, logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        """structlog processor: copy the entry into the buffer, pass it on unchanged."""
        data = {key: value for key, value in event_dict.items() if key not in _ENTRY_FIELDS}
        self._append(
            {
                "timestamp": event_dict.get("timestamp") or _iso_now(),
                "level": str(event_dict.get("level") or method_name).upper(),
                "source": event_dict.get("logger") or "server",
                "message": str(event_dict.get("event", "")),
                "data": _json_safe(data),
            }
        )
        return event_dict

    def add(
        self, level: str, message: str, source: str = "client", data: dict[str, Any] | None = None
    ) -> None:
        self._append(
            {
                "timestamp": _iso_now(),
                "level": level.upper(),
                "source": source,
                "message": message,
                "data": _json_safe(data or {}),
            }
        )

    async def load(self) -> int:
        """Put persisted entries ahead of anything logged since startup."""
        try:
            stored = (await self.store.get([LOG_KEY])).get(LOG_KEY)
        except Exception as e:
            logger.error("Failed to load debug logs", error=str(e), error_type=type(e).__name__)
            return 0

        if not isinstance(stored, list):
            return 0

        self.entries = deque([*stored, *self.entries], maxlen=self.max_entries)
        return len(stored)

    async def flush(self) -> bool:
        if not self.dirty:
            return False

        snapshot = list(self.entries)
        self.dirty = False
        try:
            persisted = await self.store.set({LOG_KEY: snapshot})
        except Exception as e:
            self.dirty = True
            logger.error("Failed to persist debug logs", error=str(e), entries=len(snapshot))
            return False

        if not persisted:
            self.dirty = True
        return persisted

    async def clear(self) -> bool:
        self.entries.clear()
        self.dirty = False
        try:
            return await self.store.set({LOG_KEY: []})
        except Exception as e:
            logger.error("Failed to clear debug logs", error=str(e))
            return False

    def export(self) -> str:
        """Plain-text report of every buffered entry, oldest first."""
        if not self.entries:
            return "No logs available to export."

        lines = [
            "LEAD ENRICHER LOGS",
            f"Generated: {_iso_now()}",
            f"Total entries: {len(self.entries)}",
            "=" * 80,
            "",
        ]
        for entry in self.entries:
            lines.append(f"[{entry['timestamp']}] [{entry['level']}] [{entry['source']}]")
            message = entry["message"]
            if entry.get("data"):
                message = f"{message} {json.dumps(entry['data'], sort_keys=True)}"
            lines.append(message)
            lines.append("-" * 40)
        return "\n".join(lines) + "\n"

    async def run_flusher(
        self,
        interval_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        interval = interval_seconds or settings.LOG_BUFFER_FLUSH_SECONDS
        while True:
            await sleep(interval)
            await self.flush()


# Singleton instance for application use
log_buffer = PersistentLogBuffer(kv_store)
