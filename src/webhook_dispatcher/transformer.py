"""Render domain events into the JSON body each kind of receiver expects.

Every format is a plain function ``(event) -> dict`` registered under a
:class:`PayloadFormat`. The functions never mutate the event and only read
its timestamp, so rendering the same event twice yields the same body (and
therefore the same signature).
"""

import copy
from typing import Callable

from src.models.webhook import DomainEvent, PayloadFormat

Transformer = Callable[[DomainEvent], dict]

FOOTER = "Feedback Webhooks"

TYPE_LABELS = {
    "nps": "NPS Score",
    "suggestion": "Suggestion",
    "bug": "Bug Report",
}

EVENT_LABELS = {
    "feedback.created": "New feedback",
    "feedback.updated": "Feedback updated",
    "webhook.test": "Test event",
}

SLACK_COLORS = {"nps": "#00ff88", "suggestion": "#4488ff", "bug": "#ff4444"}
DISCORD_COLORS = {"nps": 0x00FF88, "suggestion": 0x4488FF, "bug": 0xFF4444}
DEFAULT_SLACK_COLOR = "#888888"
DEFAULT_DISCORD_COLOR = 0x888888

SLACK_TEXT_LIMIT = 200
DISCORD_TEXT_LIMIT = 500


def _truncate(text: str | None, limit: int) -> str | None:
    if text is None:
        return None
    text = str(text)
    return text if len(text) <= limit else text[:limit] + "..."


def _event_label(event: DomainEvent) -> str:
    return EVENT_LABELS.get(event.event_type, event.event_type)


def _type_label(feedback_type) -> str:
    return TYPE_LABELS.get(feedback_type, str(feedback_type or "unknown"))


def render_generic(event: DomainEvent) -> dict:
    return {
        "event": event.event_type,
        "event_id": event.event_id,
        "project_id": event.project_id,
        "timestamp": event.timestamp.isoformat(),
        "data": copy.deepcopy(event.data),
    }


def render_slack(event: DomainEvent) -> dict:
    data = event.data
    feedback_type = data.get("type")
    fields = [
        {"title": "Type", "value": _type_label(feedback_type), "short": True},
        {"title": "Event", "value": _event_label(event), "short": True},
    ]
    if data.get("nps_score") is not None:
        fields.append({"title": "NPS Score", "value": f"{data['nps_score']}/10", "short": True})
    if data.get("page_url"):
        fields.append({"title": "Page", "value": data["page_url"], "short": False})
    if data.get("user_email"):
        fields.append({"title": "User", "value": data["user_email"], "short": False})

    return {
        "attachments": [
            {
                "color": SLACK_COLORS.get(feedback_type, DEFAULT_SLACK_COLOR),
                "title": _event_label(event),
                "text": _truncate(data.get("content"), SLACK_TEXT_LIMIT),
                "fields": fields,
                "footer": FOOTER,
                "ts": int(event.timestamp.timestamp()),
            }
        ],
    }


def render_discord(event: DomainEvent) -> dict:
    data = event.data
    feedback_type = data.get("type")
    fields = [
        {"name": "Type", "value": _type_label(feedback_type), "inline": True},
        {"name": "Project", "value": data.get("project_name") or "N/A", "inline": True},
    ]
    if data.get("nps_score") is not None:
        fields.append({"name": "NPS Score", "value": f"{data['nps_score']}/10", "inline": True})
    if data.get("page_url"):
        fields.append({"name": "Page", "value": data["page_url"], "inline": False})
    if data.get("user_email"):
        fields.append({"name": "User", "value": data["user_email"], "inline": False})

    feedback_id = str(data.get("id") or "")
    return {
        "embeds": [
            {
                "title": _event_label(event),
                "description": _truncate(data.get("content"), DISCORD_TEXT_LIMIT),
                "color": DISCORD_COLORS.get(feedback_type, DEFAULT_DISCORD_COLOR),
                "fields": fields,
                "footer": {"text": f"{FOOTER} • ID: {feedback_id[:8]}"},
                "timestamp": event.timestamp.isoformat(),
            }
        ],
    }


class PayloadTransformer:
    """Looks up the rendering function for a format; unknown formats render generic."""

    DEFAULT_FORMATS: dict[PayloadFormat, Transformer] = {
        PayloadFormat.GENERIC: render_generic,
        PayloadFormat.SLACK: render_slack,
        PayloadFormat.DISCORD: render_discord,
    }

    def __init__(self, formats: dict[PayloadFormat, Transformer] | None = None):
        self._formats = dict(self.DEFAULT_FORMATS)
        if formats:
            self._formats.update(formats)

    def register(self, payload_format: PayloadFormat, transformer: Transformer) -> None:
        self._formats[payload_format] = transformer

    def transform(self, event: DomainEvent, payload_format: "PayloadFormat | str | None") -> dict:
        fmt = PayloadFormat.parse(payload_format)
        render = self._formats.get(fmt, self._formats[PayloadFormat.GENERIC])
        return render(event)
