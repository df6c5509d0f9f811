"""Storage contracts the dispatcher relies on, plus thread-safe in-memory versions.

A real deployment backs :class:`DeliveryStore` with a database whose claim
query marks rows atomically (``UPDATE ... RETURNING`` or
``SELECT ... FOR UPDATE SKIP LOCKED``). The in-memory stores provide the same
guarantees with a lock and are used by tests and local runs.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Protocol

from src.models.delivery import Delivery, DeliveryStatus
from src.models.webhook import Webhook
from src.utils.clock import utcnow
from src.webhook_dispatcher.errors import DeliveryStateError, LeaseLostError, WebhookNotFoundError


class DeliveryStore(Protocol):
    def add(self, delivery: Delivery) -> Delivery: ...

    def get(self, delivery_id: str) -> Delivery | None: ...

    def claim_due_deliveries(
        self, limit: int, now: datetime, lease_seconds: float
    ) -> list[Delivery]: ...

    def renew_claim(
        self, delivery_id: str, claim_token: str, now: datetime, lease_seconds: float
    ) -> bool: ...

    def update_delivery_status(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        *,
        attempt_count: int,
        http_status_code: int | None = None,
        response_body: str | None = None,
        error_message: str | None = None,
        duration_ms: float | None = None,
        next_attempt_at: datetime | None = None,
        payload: dict | None = None,
        signature: str | None = None,
        claim_token: str | None = None,
    ) -> Delivery: ...

    def list_deliveries(
        self,
        webhook_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int = 50,
    ) -> list[Delivery]: ...

    def pending_count(self, now: datetime) -> int: ...


class WebhookStore(Protocol):
    def add(self, webhook: Webhook) -> Webhook: ...

    def get(self, webhook_id: str) -> Webhook | None: ...

    def update(self, webhook: Webhook) -> Webhook: ...

    def list_subscribed(self, project_id: str, event_type: str) -> list[Webhook]: ...


class InMemoryDeliveryStore:
    """Thread-safe delivery store with lease-based claims."""

    def __init__(self, clock=utcnow):
        self._deliveries: dict[str, Delivery] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def add(self, delivery: Delivery) -> Delivery:
        now = self._clock()
        stored = replace(
            delivery,
            created_at=delivery.created_at or now,
            updated_at=delivery.updated_at or now,
        )
        with self._lock:
            if stored.delivery_id in self._deliveries:
                raise DeliveryStateError(f"Delivery {stored.delivery_id} already exists")
            self._deliveries[stored.delivery_id] = stored
            return replace(stored)

    def get(self, delivery_id: str) -> Delivery | None:
        with self._lock:
            delivery = self._deliveries.get(delivery_id)
            return replace(delivery) if delivery else None

    def claim_due_deliveries(
        self, limit: int, now: datetime, lease_seconds: float
    ) -> list[Delivery]:
        """Atomically lease up to ``limit`` due deliveries, oldest due first.

        Every claim gets a fresh ``claim_token``; only the holder of the
        current token may renew the lease or record an attempt.
        """
        if limit <= 0:
            return []
        locked_until = now + timedelta(seconds=lease_seconds)
        with self._lock:
            due = [d for d in self._deliveries.values() if d.is_due(now)]
            due.sort(key=lambda d: (d.next_attempt_at or d.created_at or now, d.delivery_id))
            claimed = []
            for delivery in due[:limit]:
                delivery.locked_until = locked_until
                delivery.claim_token = uuid.uuid4().hex
                claimed.append(replace(delivery))
            return claimed

    def renew_claim(
        self, delivery_id: str, claim_token: str, now: datetime, lease_seconds: float
    ) -> bool:
        """Extend a lease right before an attempt. False if the claim was taken over."""
        with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None or current.status.is_terminal or current.claim_token != claim_token:
                return False
            current.locked_until = now + timedelta(seconds=lease_seconds)
            return True

    def update_delivery_status(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        *,
        attempt_count: int,
        http_status_code: int | None = None,
        response_body: str | None = None,
        error_message: str | None = None,
        duration_ms: float | None = None,
        next_attempt_at: datetime | None = None,
        payload: dict | None = None,
        signature: str | None = None,
        claim_token: str | None = None,
    ) -> Delivery:
        with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None:
                raise DeliveryStateError(f"Delivery {delivery_id} not found")
            if claim_token is not None and current.claim_token != claim_token:
                raise LeaseLostError(f"Delivery {delivery_id} was claimed by another worker")
            if current.status.is_terminal:
                raise DeliveryStateError(
                    f"Delivery {delivery_id} is already {current.status.value}"
                )
            if attempt_count > current.max_attempts:
                raise DeliveryStateError(
                    f"Delivery {delivery_id}: attempt {attempt_count} exceeds "
                    f"max attempts {current.max_attempts}"
                )
            if attempt_count < current.attempt_count:
                raise DeliveryStateError(f"Delivery {delivery_id}: attempt count cannot decrease")

            updated = replace(
                current,
                status=status,
                attempt_count=attempt_count,
                http_status_code=http_status_code,
                response_body=response_body,
                error_message=error_message,
                duration_ms=duration_ms,
                next_attempt_at=None if status.is_terminal else next_attempt_at,
                payload=payload if payload is not None else current.payload,
                signature=signature if signature is not None else current.signature,
                locked_until=None,
                claim_token=None,
                updated_at=self._clock(),
            )
            self._deliveries[delivery_id] = updated
            return replace(updated)

    def list_deliveries(
        self,
        webhook_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int = 50,
    ) -> list[Delivery]:
        with self._lock:
            items = [
                d for d in self._deliveries.values()
                if (webhook_id is None or d.webhook_id == webhook_id)
                and (status is None or d.status is status)
            ]
        items.sort(key=lambda d: d.created_at, reverse=True)
        return [replace(d) for d in items[:limit]]

    def pending_count(self, now: datetime) -> int:
        with self._lock:
            return sum(1 for d in self._deliveries.values() if d.is_due(now))


class InMemoryWebhookStore:
    """Thread-safe webhook registry."""

    def __init__(self):
        self._webhooks: dict[str, Webhook] = {}
        self._lock = threading.Lock()

    def add(self, webhook: Webhook) -> Webhook:
        with self._lock:
            self._webhooks[webhook.webhook_id] = webhook
            return replace(webhook, events=set(webhook.events))

    def get(self, webhook_id: str) -> Webhook | None:
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            return replace(webhook, events=set(webhook.events)) if webhook else None

    def update(self, webhook: Webhook) -> Webhook:
        with self._lock:
            if webhook.webhook_id not in self._webhooks:
                raise WebhookNotFoundError(f"Webhook {webhook.webhook_id} not found")
            self._webhooks[webhook.webhook_id] = webhook
            return replace(webhook, events=set(webhook.events))

    def list_subscribed(self, project_id: str, event_type: str) -> list[Webhook]:
        with self._lock:
            matches = [
                w for w in self._webhooks.values()
                if w.project_id == project_id and w.subscribes_to(event_type)
            ]
        matches.sort(key=lambda w: (w.created_at is None, w.created_at, w.webhook_id))
        return [replace(w, events=set(w.events)) for w in matches]
