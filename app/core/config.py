from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis configuration
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    redis_channel_name: str = "fusion-events"  # Pub/Sub channel name
    redis_enabled: bool = True

    # Database configuration
    database_url: str = "postgresql://fusion:fusion@db:5432/fusion_bridge"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Vendor HTTP calls
    http_timeout_seconds: float = 30.0

    # Linear driver returns fixtures instead of calling the API
    linear_use_mock_data: bool = False

    # Event retention
    event_retention_enabled: bool = True
    event_retention_interval_hours: int = 24
    default_retention_strategy: str = "hybrid"
    default_retention_days: int = 90
    default_retention_max_events: int = 100000

    # Automation action retries
    automation_max_attempts: int = 3
    automation_initial_delay_ms: int = 500
    automation_max_delay_ms: int = 5000
    automation_backoff_factor: float = 2.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
