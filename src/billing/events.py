"""Parse verified provider event envelopes into typed :class:`BillingEvent` values.

Envelope shape: ``{"id", "type", "created", "data": {"object": {...}}}``.
Only the fields the router needs are lifted out of the embedded object; the
raw object is kept on the event for logging.
"""

from datetime import datetime, timezone

from src.billing.errors import MalformedEventError
from src.models.billing import (
    BillingEvent,
    BillingEventType,
    CheckoutPayload,
    PaymentPayload,
    SubscriptionPayload,
)


def from_unix(value) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise MalformedEventError(f"Invalid timestamp: {value!r}") from e


def _ref_id(value) -> str | None:
    """Provider references are either an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value else None


def _payment_intent(obj: dict) -> PaymentPayload:
    error = obj.get("last_payment_error") or {}
    return PaymentPayload(
        object_id=str(obj.get("id", "")),
        customer_id=_ref_id(obj.get("customer")),
        subscription_id=_ref_id((obj.get("metadata") or {}).get("subscription_id")),
        amount=obj.get("amount"),
        currency=obj.get("currency"),
        failure_reason=error.get("message") or error.get("code"),
    )


def _invoice(obj: dict) -> PaymentPayload:
    period_end = None
    lines = (obj.get("lines") or {}).get("data") or []
    if lines:
        period_end = from_unix((lines[0].get("period") or {}).get("end"))
    if period_end is None:
        period_end = from_unix(obj.get("period_end"))
    error = obj.get("last_finalization_error") or {}
    return PaymentPayload(
        object_id=str(obj.get("id", "")),
        customer_id=_ref_id(obj.get("customer")),
        subscription_id=_ref_id(obj.get("subscription")),
        amount=obj.get("amount_paid", obj.get("amount_due")),
        currency=obj.get("currency"),
        failure_reason=error.get("message"),
        period_end=period_end,
    )


def _subscription(obj: dict) -> SubscriptionPayload:
    period_end = obj.get("current_period_end")
    if period_end is None:
        # Newer API versions moved the period onto subscription items
        items = (obj.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    if not obj.get("id"):
        raise MalformedEventError("Subscription object without id")
    return SubscriptionPayload(
        subscription_id=str(obj["id"]),
        customer_id=_ref_id(obj.get("customer")),
        status=str(obj.get("status", "")),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end", False)),
        current_period_end=from_unix(period_end),
    )


def _checkout(obj: dict) -> CheckoutPayload:
    metadata = obj.get("metadata") or {}
    return CheckoutPayload(
        session_id=str(obj.get("id", "")),
        customer_id=_ref_id(obj.get("customer")),
        subscription_id=_ref_id(obj.get("subscription")),
        project_id=metadata.get("project_id") or metadata.get("projectId"),
    )


_PARSERS = {
    BillingEventType.PAYMENT_SUCCEEDED: _payment_intent,
    BillingEventType.PAYMENT_FAILED: _payment_intent,
    BillingEventType.INVOICE_PAID: _invoice,
    BillingEventType.INVOICE_PAYMENT_FAILED: _invoice,
    BillingEventType.SUBSCRIPTION_UPDATED: _subscription,
    BillingEventType.SUBSCRIPTION_DELETED: _subscription,
    BillingEventType.CHECKOUT_COMPLETED: _checkout,
}


def parse_event(envelope) -> BillingEvent:
    if not isinstance(envelope, dict):
        raise MalformedEventError("Event envelope must be a JSON object")
    event_id = envelope.get("id")
    raw_type = envelope.get("type")
    if not event_id or not isinstance(event_id, str):
        raise MalformedEventError("Event envelope is missing 'id'")
    if not raw_type or not isinstance(raw_type, str):
        raise MalformedEventError("Event envelope is missing 'type'")

    data = envelope.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError("Event envelope is missing 'data.object'")

    event_type = BillingEventType.from_wire(raw_type)
    parser = _PARSERS.get(event_type)
    created = from_unix(envelope.get("created")) or datetime.now(timezone.utc)
    return BillingEvent(
        event_id=event_id,
        type=event_type,
        raw_type=raw_type,
        created=created,
        payload=parser(obj) if parser else None,
        raw_object=obj,
    )
