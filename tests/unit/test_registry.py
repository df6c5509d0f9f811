"""Unit tests for webhook registration and management."""

import pytest

from src.models.webhook import PayloadFormat
from src.webhook_dispatcher.errors import (
    InvalidWebhookURLError,
    UnknownEventTypeError,
    WebhookNotFoundError,
)


pytestmark = pytest.mark.unit


class TestCreateWebhook:
    def test_create_issues_secret_once(self, registry, webhook_store):
        """The secret is returned at creation and kept out of the public view."""
        issued = registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"])
        assert issued.secret.startswith("whsec_")
        assert issued.webhook.webhook_id.startswith("wh_")
        assert webhook_store.get(issued.webhook.webhook_id).secret == issued.secret
        assert "secret" not in issued.webhook.public_dict()
        assert issued.secret not in repr(issued.webhook)

    def test_format_detected_from_url(self, registry):
        """Without an explicit format the URL decides."""
        issued = registry.create_webhook("proj_1", "https://hooks.slack.com/services/T/B/X", ["feedback.created"])
        assert issued.webhook.payload_format is None
        assert issued.webhook.effective_format is PayloadFormat.SLACK

    def test_explicit_format_wins(self, registry):
        issued = registry.create_webhook(
            "proj_1", "https://hooks.slack.com/services/T/B/X", ["feedback.created"], payload_format="generic",
        )
        assert issued.webhook.effective_format is PayloadFormat.GENERIC

    @pytest.mark.parametrize("url", [
        "http://example.com/hook",
        "ftp://example.com/hook",
        "not a url",
        "https:///nohost",
    ])
    def test_insecure_or_invalid_url_rejected(self, registry, url):
        with pytest.raises(InvalidWebhookURLError):
            registry.create_webhook("proj_1", url, ["feedback.created"])

    @pytest.mark.parametrize("url", ["http://localhost:8000/hook", "http://127.0.0.1:9000/hook", "http://[::1]/hook"])
    def test_plain_http_allowed_for_loopback(self, registry, url):
        assert registry.create_webhook("proj_1", url, ["feedback.created"]).webhook.url == url

    def test_unknown_event_rejected(self, registry):
        with pytest.raises(UnknownEventTypeError) as exc_info:
            registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created", "feedback.deleted"])
        assert "feedback.deleted" in str(exc_info.value)

    def test_no_events_rejected(self, registry):
        with pytest.raises(UnknownEventTypeError):
            registry.create_webhook("proj_1", "https://example.com/hook", [])

    def test_max_retries_must_be_positive(self, registry):
        with pytest.raises(ValueError):
            registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"], max_retries=0)


class TestManageWebhook:
    def test_update_fields(self, registry):
        issued = registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"])
        updated = registry.update_webhook(
            issued.webhook.webhook_id, events=["feedback.updated"], max_retries=2, name="Ops",
        )
        assert updated.events == {"feedback.updated"}
        assert updated.max_retries == 2
        assert updated.name == "Ops"
        assert updated.secret == issued.secret

    def test_secret_not_updatable(self, registry):
        issued = registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"])
        with pytest.raises(ValueError):
            registry.update_webhook(issued.webhook.webhook_id, secret="whsec_mine")

    def test_rotate_secret(self, registry, webhook_store):
        issued = registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"])
        rotated = registry.rotate_secret(issued.webhook.webhook_id)
        assert rotated.secret != issued.secret
        assert webhook_store.get(issued.webhook.webhook_id).secret == rotated.secret

    def test_disable_stops_subscription(self, registry, webhook_store):
        issued = registry.create_webhook("proj_1", "https://example.com/hook", ["feedback.created"])
        registry.set_active(issued.webhook.webhook_id, False)
        assert webhook_store.list_subscribed("proj_1", "feedback.created") == []

    def test_unknown_webhook(self, registry):
        with pytest.raises(WebhookNotFoundError):
            registry.rotate_secret("wh_missing")
