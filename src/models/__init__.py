from .webhook import DomainEvent, PayloadFormat, Webhook
from .delivery import AttemptResult, Delivery, DeliveryStatus, ErrorKind
from .billing import (
    BillingAction,
    BillingEvent,
    BillingEventType,
    BillingOutcome,
    CheckoutPayload,
    PaymentPayload,
    Plan,
    PlanUpdate,
    SubscriptionPayload,
    SubscriptionStatus,
    Tenant,
)

__all__ = [
    "DomainEvent", "PayloadFormat", "Webhook",
    "AttemptResult", "Delivery", "DeliveryStatus", "ErrorKind",
    "BillingAction", "BillingEvent", "BillingEventType", "BillingOutcome",
    "CheckoutPayload", "PaymentPayload", "SubscriptionPayload",
    "Plan", "PlanUpdate", "SubscriptionStatus", "Tenant",
]
