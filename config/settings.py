"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cache defaults loaded from RESOURCE_CACHE_* environment variables."""

    # Cache settings
    default_ttl_seconds: float = 300.0

    # Retry settings
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: Optional[float] = 30.0
    attempt_timeout_seconds: Optional[float] = None

    # Refetch observed keys when the application wakes up
    refetch_on_wake: bool = True

    class Config:
        env_prefix = "RESOURCE_CACHE_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
