"""User-facing notifications for export runs."""

from typing import Protocol

from lead_enricher.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    async def notify(self, title: str, message: str) -> None: ...


class LogNotifier:
    """Default notifier: notifications become structured log entries."""

    async def notify(self, title: str, message: str) -> None:
        logger.info("Notification", title=title, message=message)


# Singleton instance for application use
notifier = LogNotifier()
