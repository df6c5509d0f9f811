import logging
import uuid
from dataclasses import replace

from src.models.delivery import Delivery, DeliveryStatus
from src.webhook_dispatcher.errors import DeliveryStateError
from src.webhook_dispatcher.store import DeliveryStore, WebhookStore

logger = logging.getLogger(__name__)


class WebhookReplayManager:
    """Re-queues deliveries that already reached a terminal state.

    Terminal records are never reopened: a replay is a fresh pending delivery
    carrying the same event id, so receivers that de-duplicate on
    ``X-Event-ID`` still see it as the same event.
    """

    def __init__(self, deliveries: DeliveryStore, webhooks: WebhookStore):
        self.deliveries = deliveries
        self.webhooks = webhooks

    def replay(self, delivery_id: str) -> Delivery:
        original = self.deliveries.get(delivery_id)
        if original is None:
            raise ValueError(f"Delivery {delivery_id} not found for replay")
        if not original.status.is_terminal:
            raise DeliveryStateError(
                f"Delivery {delivery_id} is still {original.status.value}; only terminal deliveries can be replayed"
            )

        webhook = self.webhooks.get(original.webhook_id)
        max_attempts = webhook.max_retries if webhook else original.max_attempts
        copy = replace(
            original,
            delivery_id=f"dlv_{uuid.uuid4().hex[:16]}",
            status=DeliveryStatus.PENDING,
            attempt_count=0,
            max_attempts=max_attempts,
            payload=None,
            signature=None,
            next_attempt_at=None,
            locked_until=None,
            claim_token=None,
            http_status_code=None,
            response_body=None,
            error_message=None,
            duration_ms=None,
            created_at=None,
            updated_at=None,
        )
        stored = self.deliveries.add(copy)
        logger.info("Replaying delivery %s as %s", delivery_id, stored.delivery_id)
        return stored

    def replay_failed(self, webhook_id: str | None = None, limit: int = 100) -> list[Delivery]:
        """Replay every failed delivery (optionally for one webhook)."""
        failed = self.deliveries.list_deliveries(
            webhook_id=webhook_id, status=DeliveryStatus.FAILED, limit=limit
        )
        return [self.replay(d.delivery_id) for d in failed]
