"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # GitHub (token optional, but unauthenticated quota is 60 req/hour)
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Freshness thresholds
    USER_REFRESH_THRESHOLD_SECONDS: int = 10 * 60
    ANALYTICS_RECALC_THRESHOLD_SECONDS: int = 30 * 60

    # Limits
    MAX_LANGUAGE_REPOS: int = 50
    MAX_COMPARE_USERS: int = 10

    # Timeouts
    API_TIMEOUT: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
