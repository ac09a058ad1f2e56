from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from geomessages.planner import PushedDimension


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # Pydantic v2 settings config
    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Ensure environment variables override .env file
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Retrieval tuning
    # Upper bound accepted for max_records
    MAX_RECORDS_CEILING: int = Field(default=500, ge=1)
    # Rows fetched per page = max_records * OVERFETCH_FACTOR (0 = no limit)
    OVERFETCH_FACTOR: int = Field(default=4, ge=0)
    PUSHED_DIMENSION: PushedDimension = PushedDimension.LATITUDE
    # Deadline for all store calls of one retrieval, unset = no deadline
    STORE_TIMEOUT_SECONDS: Optional[float] = Field(default=None, gt=0)

    # Report validation errors with HTTP 200 like the legacy server did
    INBAND_VALIDATION_ERRORS: bool = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
