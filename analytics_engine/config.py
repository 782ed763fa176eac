"""Application configuration via environment variables."""

import json
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"
    CORS_ORIGINS: str = '["http://localhost:3000"]'

    # Calendar used for day/week/month bucketing
    TIMEZONE: str = "UTC"

    # Aggregation defaults
    DEFAULT_TIME_RANGE: str = "30d"
    TREND_DAYS: int = 7
    RANKING_LIMIT: int = 0  # 0 → no limit

    # Authoritative analytics API
    ANALYTICS_API_BASE_URL: str = "http://localhost:5000/api"
    ANALYTICS_API_TOKEN: str = ""
    FETCH_RETRIES: int = 2
    FETCH_TIMEOUT_SECONDS: float = 30.0
    FETCH_BACKOFF_BASE_SECONDS: float = 1.0
    FETCH_BACKOFF_MAX_SECONDS: float = 30.0
    CACHE_STALE_SECONDS: int = 120

    # Rate limiting
    ANALYTICS_RATE_LIMIT: str = "120/minute"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS JSON string into a list."""
        try:
            return json.loads(self.CORS_ORIGINS)
        except (json.JSONDecodeError, TypeError):
            return ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
