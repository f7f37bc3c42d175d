"""
Structured logging setup for the lead enrichment service.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from collections.abc import Callable
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO", extra_processors: list[Callable] | None = None) -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        extra_processors: Processors run on the enriched entry just before rendering
    """

    # Configure structlog
    structlog.configure(
        processors=[
            # Add timestamp
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            *(extra_processors or []),
            # JSON formatting for production
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the emitting service."""
    event_dict.setdefault("service", "lead-enricher")
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_ai_call(model: str, attempt: int, outcome: str, duration_ms: float, error: str = None):
    """Log a single Gemini attempt with consistent fields."""
    logger = get_logger("ai")

    log_data = {
        "model": model,
        "attempt": attempt,
        "outcome": outcome,
        "duration_ms": duration_ms,
    }

    if error:
        log_data["error"] = error

    if outcome == "success":
        logger.info("Gemini attempt completed", **log_data)
    else:
        logger.warning("Gemini attempt failed", **log_data)
