# codehub_scheduler/config.py
"""Application configuration using pydantic-settings.

Provides a centralized Settings class for all environment variables.
"""

from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are loaded from .env file and environment variables.
    Environment variables take precedence over .env file values.
    """

    # Downstream Codehub execution engine
    codehub_api_base_url: str = "http://localhost:8000"
    downstream_timeout: float = 30.0  # Seconds; expiry is a failed firing

    # Persistence
    database_path: str = "data/scheduler.db"

    # Scheduler
    scheduler_timezone: str = "UTC"
    misfire_grace_time: int = 60  # Seconds a late tick may still run

    # Admin API
    api_prefix: str = "/api/scheduler"
    api_rate_limit: int = 120  # Requests per minute
    cors_origins: list[str] = ["*"]

    # Logging & observability
    log_level: str = "INFO"
    log_json: bool = False
    logfire_token: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
        case_sensitive=False,  # Allow case-insensitive env var names
    )

    @property
    def timezone(self) -> ZoneInfo:
        """Scheduler time zone as a ZoneInfo."""
        return ZoneInfo(self.scheduler_timezone)


# Singleton instance - import this in your code
settings = Settings()
