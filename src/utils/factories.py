import json
import time
import uuid
from datetime import datetime, timedelta, timezone

from src.models.billing import Plan, SubscriptionStatus, Tenant
from src.models.webhook import DomainEvent, PayloadFormat, Webhook
from src.utils.crypto import compute_hmac, generate_secret


class WebhookFactory:
    """Factory for creating Webhook instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> Webhook:
        now = datetime.now(timezone.utc)
        defaults = {
            "webhook_id": f"wh_{uuid.uuid4().hex[:16]}",
            "project_id": f"proj_{uuid.uuid4().hex[:8]}",
            "url": "https://example.com/webhook",
            "secret": generate_secret(),
            "events": {"feedback.created", "feedback.updated"},
            "payload_format": PayloadFormat.GENERIC,
            "max_retries": 3,
            "is_active": True,
            "name": "Test webhook",
            "created_at": now,
            "updated_at": now,
        }
        defaults.update(overrides)
        return Webhook(**defaults)


class EventFactory:
    """Factory for feedback domain events."""

    @staticmethod
    def create_event(event_type: str = "feedback.created", **overrides) -> DomainEvent:
        data = {
            "id": str(uuid.uuid4()),
            "type": "suggestion",
            "content": "It would be great to export feedback as CSV",
            "nps_score": None,
            "page_url": "https://app.example.com/settings",
            "user_email": "user@example.com",
            "project_name": "Example Project",
        }
        data.update(overrides.pop("data", {}))
        defaults = {
            "event_id": f"evt_{uuid.uuid4().hex[:16]}",
            "project_id": f"proj_{uuid.uuid4().hex[:8]}",
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc),
            "data": data,
        }
        defaults.update(overrides)
        return DomainEvent(**defaults)


class TenantFactory:
    @staticmethod
    def create(**overrides) -> Tenant:
        defaults = {
            "tenant_id": f"proj_{uuid.uuid4().hex[:8]}",
            "plan": Plan.FREE,
            "status": SubscriptionStatus.INACTIVE,
            "customer_id": f"cus_{uuid.uuid4().hex[:12]}",
            "subscription_id": None,
            "current_period_end": None,
        }
        defaults.update(overrides)
        return Tenant(**defaults)


class BillingEventFactory:
    """Builds provider event envelopes and signs them like the provider does."""

    @staticmethod
    def envelope(event_type: str, obj: dict, event_id: str | None = None, created: int | None = None) -> dict:
        return {
            "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
            "object": "event",
            "type": event_type,
            "created": created if created is not None else int(time.time()),
            "data": {"object": obj},
        }

    @staticmethod
    def payment_intent(event_type: str = "payment_intent.succeeded", customer: str | None = "cus_123", **kwargs) -> dict:
        obj = {
            "id": f"pi_{uuid.uuid4().hex[:16]}",
            "object": "payment_intent",
            "amount": kwargs.pop("amount", 1900),
            "currency": kwargs.pop("currency", "usd"),
            "customer": customer,
        }
        if "failure_message" in kwargs:
            obj["last_payment_error"] = {"message": kwargs.pop("failure_message")}
        return BillingEventFactory.envelope(event_type, obj, **kwargs)

    @staticmethod
    def subscription(
        event_type: str = "customer.subscription.updated",
        customer: str | None = "cus_123",
        status: str = "active",
        cancel_at_period_end: bool = False,
        period_end: datetime | None = None,
        **kwargs,
    ) -> dict:
        period_end = period_end or datetime.now(timezone.utc) + timedelta(days=30)
        obj = {
            "id": kwargs.pop("subscription_id", f"sub_{uuid.uuid4().hex[:14]}"),
            "object": "subscription",
            "customer": customer,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "current_period_end": int(period_end.timestamp()),
        }
        return BillingEventFactory.envelope(event_type, obj, **kwargs)

    @staticmethod
    def sign(envelope: dict, secret: str, timestamp: int | None = None) -> tuple[bytes, str]:
        """Serialize an envelope and return ``(body, signature header)``."""
        body = json.dumps(envelope).encode("utf-8")
        ts = int(time.time()) if timestamp is None else timestamp
        header = f"t={ts},v1={compute_hmac(f'{ts}.'.encode('utf-8') + body, secret)}"
        return body, header
