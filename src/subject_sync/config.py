"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.subject_sync.core.errors import ConfigInvalid


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


# Production crew table: crew option id on the deal -> crew display name.
DEFAULT_CREW_MAP: dict[int, str] = {
    47: "Kings",
    48: "Johnathan",
    49: "Pena",
    50: "Hector",
    51: "Sebastian",
    52: "Anastacio",
    53: "Mike",
    54: "Kim",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Pipedrive
    PIPEDRIVE_API_TOKEN: str = ""
    PIPEDRIVE_BASE_URL: str = "https://api.pipedrive.com/v1"
    REQUEST_TIMEOUT: float = 15.0

    # Shared secret for webhooks and operator endpoints
    WEBHOOK_SECRET: str = ""

    # Crew lookup
    CREW_FIELD_KEY: str = ""
    CREW_MAP: dict[int, str] = DEFAULT_CREW_MAP

    # Rename scope: all activity types, or only ALLOWED_TYPE_LABELS
    RENAME_ALL_TYPES: bool = True
    ALLOWED_TYPE_LABELS: list[str] = []

    # Drift poller
    POLLER_ENABLED: bool = True
    POLL_INTERVAL_SECONDS: int = 300
    POLL_LOOKBACK_MINUTES: int = 60
    POLL_BUFFER_SECONDS: int = 60
    POLL_PAGE_SIZE: int = 100

    # Upstream retry policy (linear backoff)
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0

    # Redis (processed-deal set for derived tasks)
    REDIS_URL: str = "redis://localhost:6379/0"
    SYNC_REDIS_PREFIX: str = "subject_sync"

    # Derived task creation
    DERIVED_TASK_TYPE_LABEL: str = "Moisture Check/Pickup"

    # Monitoring
    SENTRY_DSN: str = ""

    def require_runtime_config(self) -> None:
        """Raise ConfigInvalid if any value needed to serve traffic is missing.

        Called from the application lifespan; the process must not start
        without an API credential, a shared secret and the crew field key.
        """
        missing = [
            name
            for name in ("PIPEDRIVE_API_TOKEN", "WEBHOOK_SECRET", "CREW_FIELD_KEY")
            if not getattr(self, name).strip()
        ]
        if missing:
            raise ConfigInvalid(missing)


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
