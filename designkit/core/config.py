"""Settings for the DesignKit project state engine."""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# A missing or unreadable .env is fine; the process environment still applies
try:
    load_dotenv()
except OSError:
    pass

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Engine settings read from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    DESIGNKIT_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")
    LOG_LEVEL: Optional[str] = Field(
        default=None, description="Overrides the environment's default level (DEBUG in dev, INFO otherwise)"
    )

    # Remote project service
    DESIGNKIT_API_BASE_URL: str = Field(
        default="https://ai-project-design-toolkit-backend-production.up.railway.app/api/v1/",
        description="Base URL of the remote project service",
    )
    DESIGNKIT_API_TIMEOUT: float = Field(default=30.0, gt=0, description="Remote request timeout in seconds")

    # Reflection answer bounds
    REFLECTION_MIN_CHARS: int = Field(
        default=150, ge=0, description="Minimum characters for a reflection answer to count as answered"
    )
    REFLECTION_MAX_CHARS: int = Field(
        default=1200, gt=0, description="Maximum characters accepted for a reflection answer"
    )

    # Local cache
    PERSIST_DEBOUNCE_SECONDS: float = Field(
        default=0.5, ge=0, description="Delay used to coalesce bursts of edits into one cache write"
    )
    CACHE_DIR: Optional[str] = Field(
        default=".designkit-cache", description="Directory for the durable project cache; unset keeps it in memory"
    )
    CACHE_MAX_BYTES: int = Field(default=5_000_000, gt=0, description="Capacity of the in-memory project cache")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_level(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.upper() not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises:
        pydantic.ValidationError: If an environment variable has an invalid value
    """
    return Settings()
