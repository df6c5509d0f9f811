"""Service settings, read from ``FEEDBACK_WEBHOOKS_*`` environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FEEDBACK_WEBHOOKS_", env_file=".env", extra="ignore")

    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"

    # Outbound delivery
    webhook_timeout_seconds: float = Field(default=30.0, gt=0)
    dispatch_batch_size: int = Field(default=100, ge=1)
    dispatch_concurrency: int = Field(default=10, ge=1)
    default_max_attempts: int = Field(default=5, ge=1)
    backoff_base_seconds: float = Field(default=5.0, ge=0)
    backoff_max_seconds: float = Field(default=3600.0, ge=0)
    response_body_limit: int = Field(default=10_000, ge=0)
    claim_lease_seconds: float = Field(default=120.0, gt=0)

    # Inbound billing events
    billing_webhook_secret: str = ""
    billing_signature_tolerance_seconds: int = Field(default=300, ge=0)
    payment_period_days: int = Field(default=30, ge=1)

    # Operational trigger
    cron_secret: str | None = None
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_requests: int = Field(default=60, ge=1)
    # Only enable behind a reverse proxy that overwrites X-Forwarded-For
    trust_forwarded_for: bool = False

    # Observability
    alert_failure_threshold: float = Field(default=0.10, ge=0, le=1)
    metrics_window_seconds: float = Field(default=300.0, gt=0)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
