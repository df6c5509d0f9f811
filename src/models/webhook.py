from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from urllib.parse import urlsplit

DISCORD_HOSTS = {"discord.com", "discordapp.com", "ptb.discord.com", "canary.discord.com"}


class PayloadFormat(Enum):
    GENERIC = "generic"
    SLACK = "slack"
    DISCORD = "discord"

    @classmethod
    def parse(cls, value: "str | PayloadFormat | None") -> "PayloadFormat":
        """Unknown or empty selectors fall back to GENERIC."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.GENERIC

    @classmethod
    def detect(cls, url: str) -> "PayloadFormat":
        """Pick the format from the destination host; query strings are ignored."""
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        if host == "hooks.slack.com":
            return cls.SLACK
        if host in DISCORD_HOSTS and parts.path.startswith("/api/webhooks/"):
            return cls.DISCORD
        return cls.GENERIC


@dataclass
class Webhook:
    webhook_id: str
    project_id: str
    url: str
    secret: str = field(repr=False)
    events: set[str] = field(default_factory=set)
    payload_format: PayloadFormat | None = None
    max_retries: int = 5
    is_active: bool = True
    name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def effective_format(self) -> PayloadFormat:
        if self.payload_format is None:
            return PayloadFormat.detect(self.url)
        return self.payload_format

    def subscribes_to(self, event_type: str) -> bool:
        return self.is_active and event_type in self.events

    def public_dict(self) -> dict:
        """Representation safe to return to the owner after creation (no secret)."""
        return {
            "id": self.webhook_id,
            "project_id": self.project_id,
            "name": self.name,
            "url": self.url,
            "events": sorted(self.events),
            "payload_format": self.effective_format.value,
            "max_retries": self.max_retries,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class DomainEvent:
    event_id: str
    project_id: str
    event_type: str  # "feedback.created", "feedback.updated", ...
    timestamp: datetime
    data: dict
