"""
Configuration Management

Uses Pydantic Settings for environment-based application configuration.
Loads from .env file automatically. Cache tuning lives in
replivity.cache.config.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Warm common cache entries when the API starts
    CACHE_WARMUP_ON_STARTUP: bool = False
    CACHE_WARMUP_CONCURRENCY: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
