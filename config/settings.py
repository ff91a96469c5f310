"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Response cache
    cache_ttl_seconds: float = 300  # 5 minutes

    # Per-key spacing between dispatches of the same request
    rate_limit_spacing_seconds: float = 1.0

    # Priority queue
    queue_max_concurrent: int = 2
    queue_retry_delay_seconds: float = 0.1

    # Global hard quota (rolling window, reset as a whole)
    quota_max_requests: int = 4
    quota_window_seconds: float = 60

    # Collapses bursts of identical UI-triggered calls
    debounce_seconds: float = 0.3

    # Outbound HTTP
    request_timeout_seconds: float = 30

    # Sessions
    session_duration_hours: int = 24
    session_validation_interval_seconds: float = 300  # 5 minutes
    session_cleanup_interval_seconds: float = 3600  # 1 hour
    session_max_retries: int = 3
    session_retry_backoff_seconds: float = 1.0
    session_cookie_name: str = "restay_session"

    # Persistence
    database_url: str = "sqlite:///./restay.db"

    class Config:
        env_prefix = "RESTAY_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
