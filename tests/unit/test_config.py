"""Unit tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from src.config import Settings


pytestmark = pytest.mark.unit


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FEEDBACK_WEBHOOKS_BILLING_WEBHOOK_SECRET", raising=False)
        settings = Settings(_env_file=None)
        assert settings.webhook_timeout_seconds == 30
        assert settings.backoff_base_seconds == 5
        assert settings.backoff_max_seconds == 3600
        assert settings.billing_signature_tolerance_seconds == 300
        assert settings.alert_failure_threshold == 0.10
        assert settings.trust_forwarded_for is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FEEDBACK_WEBHOOKS_DISPATCH_BATCH_SIZE", "25")
        monkeypatch.setenv("FEEDBACK_WEBHOOKS_CRON_SECRET", "s3cret")
        settings = Settings(_env_file=None)
        assert settings.dispatch_batch_size == 25
        assert settings.cron_secret == "s3cret"

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("FEEDBACK_WEBHOOKS_DISPATCH_CONCURRENCY", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)
