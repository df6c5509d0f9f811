import logging
import uuid
from dataclasses import dataclass, replace

from src.models.webhook import PayloadFormat, Webhook
from src.utils.clock import utcnow
from src.utils.crypto import generate_secret
from src.utils.urls import is_allowed_webhook_url
from src.webhook_dispatcher.errors import (
    InvalidWebhookURLError,
    UnknownEventTypeError,
    WebhookNotFoundError,
)
from src.webhook_dispatcher.store import WebhookStore

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = frozenset({"feedback.created", "feedback.updated"})


@dataclass(frozen=True)
class IssuedSecret:
    """A webhook together with its signing secret, returned exactly once."""

    webhook: Webhook
    secret: str


class WebhookRegistry:
    """Owner-facing operations on webhooks: create, edit, rotate, enable/disable."""

    DEFAULT_MAX_RETRIES = 5

    def __init__(self, store: WebhookStore, clock=utcnow, default_max_retries: int = DEFAULT_MAX_RETRIES):
        self.store = store
        self._clock = clock
        self.default_max_retries = default_max_retries

    @staticmethod
    def validate_url(url: str) -> None:
        if not is_allowed_webhook_url(url):
            raise InvalidWebhookURLError(
                f"Webhook URL must use HTTPS (plain HTTP is only allowed for loopback): {url!r}"
            )

    @staticmethod
    def validate_events(events) -> set[str]:
        events = set(events)
        if not events:
            raise UnknownEventTypeError("At least one event type is required")
        unknown = sorted(events - SUPPORTED_EVENTS)
        if unknown:
            raise UnknownEventTypeError(f"Invalid events: {', '.join(unknown)}")
        return events

    def create_webhook(
        self,
        project_id: str,
        url: str,
        events,
        payload_format: "PayloadFormat | str | None" = None,
        max_retries: int | None = None,
        name: str = "",
    ) -> IssuedSecret:
        self.validate_url(url)
        events = self.validate_events(events)
        if max_retries is None:
            max_retries = self.default_max_retries
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        now = self._clock()
        secret = generate_secret()
        webhook = Webhook(
            webhook_id=f"wh_{uuid.uuid4().hex[:16]}",
            project_id=project_id,
            url=url,
            secret=secret,
            events=events,
            payload_format=PayloadFormat.parse(payload_format) if payload_format else None,
            max_retries=max_retries,
            name=name,
            created_at=now,
            updated_at=now,
        )
        stored = self.store.add(webhook)
        logger.info("Created webhook %s for project %s -> %s", stored.webhook_id, project_id, url)
        return IssuedSecret(webhook=stored, secret=secret)

    def _require(self, webhook_id: str) -> Webhook:
        webhook = self.store.get(webhook_id)
        if webhook is None:
            raise WebhookNotFoundError(f"Webhook {webhook_id} not found")
        return webhook

    def update_webhook(self, webhook_id: str, **changes) -> Webhook:
        """Apply owner edits. The secret is not editable here, see rotate_secret()."""
        webhook = self._require(webhook_id)
        allowed = {"url", "events", "payload_format", "max_retries", "is_active", "name"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "url" in changes:
            self.validate_url(changes["url"])
        if "events" in changes:
            changes["events"] = self.validate_events(changes["events"])
        if "payload_format" in changes and changes["payload_format"] is not None:
            changes["payload_format"] = PayloadFormat.parse(changes["payload_format"])
        if "max_retries" in changes and changes["max_retries"] < 1:
            raise ValueError("max_retries must be at least 1")
        return self.store.update(replace(webhook, updated_at=self._clock(), **changes))

    def rotate_secret(self, webhook_id: str) -> IssuedSecret:
        webhook = self._require(webhook_id)
        secret = generate_secret()
        stored = self.store.update(replace(webhook, secret=secret, updated_at=self._clock()))
        logger.info("Rotated signing secret for webhook %s", webhook_id)
        return IssuedSecret(webhook=stored, secret=secret)

    def set_active(self, webhook_id: str, active: bool) -> Webhook:
        return self.update_webhook(webhook_id, is_active=active)
