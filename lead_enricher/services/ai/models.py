"""Gemini model identifiers, quotas and fan-out limits."""

from dataclasses import dataclass

FLASH = "gemini-2.5-flash"
FLASH_LITE = "gemini-2.5-flash-lite"
PRO = "gemini-2.5-pro"


@dataclass(frozen=True, slots=True)
class ModelLimits:
    rpm: int  # requests per minute
    rpd: int  # requests per day


MODEL_LIMITS: dict[str, ModelLimits] = {
    FLASH: ModelLimits(rpm=10, rpd=250),
    FLASH_LITE: ModelLimits(rpm=15, rpd=1000),
    PRO: ModelLimits(rpm=5, rpd=100),
}

# Retry schedule for overloaded / network failures, in milliseconds
RETRY_DELAYS_MS = (2000, 5000, 10000)
MAX_RETRIES = len(RETRY_DELAYS_MS)

# Pause between concurrency batches
INTER_BATCH_DELAY_MS = 500


def fallback_model(model: str) -> str:
    """Pro falls back to Flash; every other model falls back to Pro."""
    return FLASH if model == PRO else PRO


def max_concurrent_chunks(model: str) -> int:
    return 2 if model == PRO else 3
