"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 5.0
    queue_key_prefix: str = "sms_jobs"

    # Retention of terminal job records
    completed_retention_seconds: int = 7 * 24 * 3600
    failed_retention_seconds: int = 30 * 24 * 3600

    # SMS gateway (Africa's Talking)
    sms_username: str = "sandbox"
    sms_api_key: str = ""
    sms_sender_id: str = ""
    sms_base_url: str = "https://api.sandbox.africastalking.com/version1"
    sms_timeout_seconds: float = 30.0
    sms_default_country_code: str = "254"
    sms_max_attempts: int = 3
    sms_retry_base_delay_seconds: float = 30.0
    sms_retry_rejected: bool = True

    # Worker Configuration
    worker_id: str | None = None
    worker_concurrency: int = 1
    worker_poll_interval_seconds: float = 1.0
    worker_store_error_delay_seconds: float = 5.0
    worker_store_retry_attempts: int = 5
    worker_lease_duration_seconds: int = 300
    worker_shutdown_grace_seconds: float = 30.0
    worker_metrics_port: int | None = 9090

    # Reaper Configuration
    reaper_interval_seconds: int = 30

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "notification-dispatch"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
