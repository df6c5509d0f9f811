"""Unit tests for payload rendering per receiver format."""

from datetime import datetime, timezone

import pytest

from src.models.webhook import PayloadFormat
from src.utils.factories import EventFactory
from src.webhook_dispatcher.transformer import PayloadTransformer


pytestmark = pytest.mark.unit

TIMESTAMP = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def transformer():
    return PayloadTransformer()


@pytest.fixture
def event():
    return EventFactory.create_event(
        event_id="evt_abc",
        project_id="proj_123",
        timestamp=TIMESTAMP,
        data={"id": "fb_12345678abcd", "type": "bug", "content": "Button is broken", "nps_score": None},
    )


class TestGenericFormat:
    def test_generic_envelope(self, transformer, event):
        """Generic payloads carry the event metadata and the raw data."""
        payload = transformer.transform(event, PayloadFormat.GENERIC)
        assert payload["event"] == "feedback.created"
        assert payload["event_id"] == "evt_abc"
        assert payload["project_id"] == "proj_123"
        assert payload["timestamp"] == TIMESTAMP.isoformat()
        assert payload["data"]["content"] == "Button is broken"

    def test_generic_data_is_a_copy(self, transformer, event):
        """Mutating the rendered payload leaves the event untouched."""
        payload = transformer.transform(event, "generic")
        payload["data"]["content"] = "changed"
        assert event.data["content"] == "Button is broken"

    def test_rendering_is_deterministic(self, transformer, event):
        """Rendering twice gives equal payloads (and so equal signatures)."""
        for fmt in PayloadFormat:
            assert transformer.transform(event, fmt) == transformer.transform(event, fmt)

    def test_unknown_format_falls_back_to_generic(self, transformer, event):
        assert transformer.transform(event, "teams") == transformer.transform(event, PayloadFormat.GENERIC)

    def test_missing_format_falls_back_to_generic(self, transformer, event):
        assert transformer.transform(event, None)["event"] == "feedback.created"


class TestSlackFormat:
    def test_slack_attachment(self, transformer, event):
        """Slack payloads use a coloured attachment with fields."""
        payload = transformer.transform(event, PayloadFormat.SLACK)
        attachment = payload["attachments"][0]
        assert attachment["color"] == "#ff4444"
        assert attachment["title"] == "New feedback"
        assert attachment["text"] == "Button is broken"
        assert attachment["ts"] == int(TIMESTAMP.timestamp())
        titles = [f["title"] for f in attachment["fields"]]
        assert titles[:2] == ["Type", "Event"]

    def test_long_content_truncated(self, transformer):
        event = EventFactory.create_event(data={"content": "x" * 500, "type": "suggestion"})
        text = transformer.transform(event, PayloadFormat.SLACK)["attachments"][0]["text"]
        assert text == "x" * 200 + "..."

    def test_nps_score_field(self, transformer):
        event = EventFactory.create_event(data={"type": "nps", "nps_score": 9})
        fields = transformer.transform(event, PayloadFormat.SLACK)["attachments"][0]["fields"]
        assert {"title": "NPS Score", "value": "9/10", "short": True} in fields


class TestDiscordFormat:
    def test_discord_embed(self, transformer, event):
        """Discord payloads use an embed with an integer colour."""
        embed = transformer.transform(event, PayloadFormat.DISCORD)["embeds"][0]
        assert embed["color"] == 0xFF4444
        assert embed["description"] == "Button is broken"
        assert embed["timestamp"] == TIMESTAMP.isoformat()
        assert embed["footer"]["text"].endswith("ID: fb_12345")

    def test_long_content_truncated(self, transformer):
        event = EventFactory.create_event(data={"content": "y" * 800})
        description = transformer.transform(event, PayloadFormat.DISCORD)["embeds"][0]["description"]
        assert len(description) == 503


class TestFormatSelection:
    @pytest.mark.parametrize("url,expected", [
        ("https://hooks.slack.com/services/T000/B000/XXX", PayloadFormat.SLACK),
        ("https://discord.com/api/webhooks/1/abc", PayloadFormat.DISCORD),
        ("https://discordapp.com/api/webhooks/1/abc", PayloadFormat.DISCORD),
        ("https://example.com/hook", PayloadFormat.GENERIC),
        ("https://x.example/?u=hooks.slack.com", PayloadFormat.GENERIC),
        ("https://hooks.slack.com.evil.example/services/x", PayloadFormat.GENERIC),
        ("https://x.example/discord.com/api/webhooks/1", PayloadFormat.GENERIC),
        ("https://discord.com/channels/1", PayloadFormat.GENERIC),
    ])
    def test_detect_from_url(self, url, expected):
        assert PayloadFormat.detect(url) is expected

    def test_registered_renderer_replaces_default(self, event):
        """Custom renderers can be registered per format."""
        transformer = PayloadTransformer()
        transformer.register(PayloadFormat.SLACK, lambda e: {"text": e.event_id})
        assert transformer.transform(event, PayloadFormat.SLACK) == {"text": "evt_abc"}
