"""Clock helpers shared by the cache, rate limiter and export status."""

import time
from datetime import UTC, date, datetime, timedelta

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def day_string(epoch_ms: int | None = None) -> str:
    """UTC calendar day (YYYY-MM-DD) for epoch_ms, or today."""
    moment = datetime.now(UTC) if epoch_ms is None else datetime.fromtimestamp(epoch_ms / 1000, UTC)
    return moment.date().isoformat()


def is_day_older_than(day: str, today: str, days: int) -> bool:
    """True if `day` is more than `days` calendar days before `today`.

    Unparseable day strings count as old so they get pruned.
    """
    try:
        parsed = date.fromisoformat(day)
    except ValueError:
        return True
    return parsed < date.fromisoformat(today) - timedelta(days=days)
