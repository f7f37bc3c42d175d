from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_BUFFER_MAX_ENTRIES: int = 1000
    LOG_BUFFER_FLUSH_SECONDS: float = 10.0

    # Durable store (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Gemini settings
    GEMINI_API_KEY: str | None = None
    GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_DEFAULT_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT_SECONDS: float = 120.0
    GEMINI_TEMPERATURE: float = 0.1
    GEMINI_MAX_OUTPUT_TOKENS: int = 65536

    # =================================================================
    # CACHE / USAGE RETENTION
    # =================================================================
    AI_CACHE_MAX_AGE_DAYS: int = 7
    USAGE_STATS_RETENTION_DAYS: int = 7
    CACHE_CLEANUP_INTERVAL_HOURS: int = 24

    # =================================================================
    # EXPORT SETTINGS
    # =================================================================
    EXPORT_DIR: str = "exports"
    EXPORT_WATCHDOG_INTERVAL_SECONDS: float = 30.0
    EXPORT_MAX_PROCESSING_SECONDS: float = 600.0  # 10 minutes

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cache_max_age_ms(self) -> int:
        """Cache freshness window in epoch milliseconds."""
        return self.AI_CACHE_MAX_AGE_DAYS * 24 * 60 * 60 * 1000

    def export_dir(self) -> Path:
        """Resolve the export directory, creating it on first use."""
        path = Path(self.EXPORT_DIR).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def gemini_config(self) -> dict:
        """
        Generation parameters sent with every Gemini request.
        Low temperature keeps JSON answers deterministic.
        """
        return {
            "responseMimeType": "application/json",
            "temperature": self.GEMINI_TEMPERATURE,
            "maxOutputTokens": self.GEMINI_MAX_OUTPUT_TOKENS,
        }


settings = Settings()
