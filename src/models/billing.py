from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


class Plan(Enum):
    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class BillingEventType(Enum):
    """Provider event types this system acts on. Anything else is UNHANDLED."""

    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    INVOICE_PAID = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    CHECKOUT_COMPLETED = "checkout.session.completed"
    UNHANDLED = "unhandled"

    @classmethod
    def from_wire(cls, value: str) -> "BillingEventType":
        for member in cls:
            if member is not cls.UNHANDLED and member.value == value:
                return member
        return cls.UNHANDLED


class BillingAction(Enum):
    ACTIVATED = "activated"
    PAST_DUE = "past_due"
    DOWNGRADED = "downgraded"
    DOWNGRADE_SCHEDULED = "downgrade_scheduled"
    IGNORED = "ignored"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class PaymentPayload:
    object_id: str
    customer_id: str | None
    subscription_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    failure_reason: str | None = None
    period_end: datetime | None = None


@dataclass(frozen=True)
class SubscriptionPayload:
    subscription_id: str
    customer_id: str | None
    status: str
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class CheckoutPayload:
    session_id: str
    customer_id: str | None
    subscription_id: str | None = None
    project_id: str | None = None


@dataclass(frozen=True)
class BillingEvent:
    event_id: str
    type: BillingEventType
    raw_type: str
    created: datetime
    payload: PaymentPayload | SubscriptionPayload | CheckoutPayload | None = None
    raw_object: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass
class Tenant:
    tenant_id: str
    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    customer_id: str | None = None
    subscription_id: str | None = None
    current_period_end: datetime | None = None
    last_payment_error: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class PlanUpdate:
    """Fields to write on a tenant. None means "leave unchanged"."""

    plan: Plan | None = None
    status: SubscriptionStatus | None = None
    period_end: datetime | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    clear_subscription: bool = False
    last_payment_error: str | None = None

    def apply(self, tenant: Tenant, now: datetime | None = None) -> Tenant:
        changes = {}
        if self.plan is not None:
            changes["plan"] = self.plan
        if self.status is not None:
            changes["status"] = self.status
        if self.period_end is not None:
            changes["current_period_end"] = self.period_end
        if self.customer_id is not None:
            changes["customer_id"] = self.customer_id
        if self.clear_subscription:
            changes["subscription_id"] = None
        elif self.subscription_id is not None:
            changes["subscription_id"] = self.subscription_id
        if self.last_payment_error is not None:
            changes["last_payment_error"] = self.last_payment_error
        elif self.status is SubscriptionStatus.ACTIVE:
            changes["last_payment_error"] = None
        if now is not None:
            changes["updated_at"] = now
        return replace(tenant, **changes)


@dataclass(frozen=True)
class BillingOutcome:
    event_id: str
    event_type: str
    action: BillingAction
    tenant_id: str | None = None
    duplicate: bool = False

    def to_dict(self) -> dict:
        return {
            "received": True,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "action": self.action.value,
            "tenant_id": self.tenant_id,
            "duplicate": self.duplicate,
        }
