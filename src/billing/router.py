"""Billing event router: one transition function per event type.

Each transition resolves the tenant from the event and writes an absolute
target state (never an increment), so writing the same resolved state twice
leaves the tenant unchanged.

| event                                   | effect                                          |
|-----------------------------------------|-------------------------------------------------|
| payment_intent.succeeded / invoice paid | plan=pro, status=active, period end extended    |
| payment_intent.payment_failed / invoice | status=past_due, failure reason recorded        |
| subscription deleted (immediate)        | plan=free, status=canceled, subscription cleared|
| subscription deleted (at period end)    | status=canceled, plan kept until period end     |
| subscription updated active/trialing    | plan=pro, status=active, period end refreshed   |
| subscription updated canceled/unpaid    | downgrade to free                               |
| subscription updated past_due           | status=past_due                                 |
| checkout.session.completed              | plan=pro, status=active, ids recorded           |
| anything else                           | no-op, reported as "unhandled"                  |
"""

import logging
from datetime import datetime, timedelta

from src.billing.errors import MissingCustomerError, TenantNotFoundError
from src.billing.store import TenantStore
from src.models.billing import (
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
from src.utils.clock import utcnow

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})
ENDED_SUBSCRIPTION_STATUSES = frozenset({"canceled", "unpaid"})
PAST_DUE_SUBSCRIPTION_STATUSES = frozenset({"past_due"})

DEFAULT_FAILURE_REASON = "Payment failed"


class BillingEventRouter:
    DEFAULT_PERIOD_DAYS = 30

    def __init__(self, store: TenantStore, period_days: int = DEFAULT_PERIOD_DAYS, clock=utcnow):
        self.store = store
        self.period = timedelta(days=period_days)
        self._clock = clock

    def route(self, event: BillingEvent) -> BillingOutcome:
        match event.type:
            case BillingEventType.PAYMENT_SUCCEEDED | BillingEventType.INVOICE_PAID:
                return self._payment_succeeded(event, event.payload)
            case BillingEventType.PAYMENT_FAILED | BillingEventType.INVOICE_PAYMENT_FAILED:
                return self._payment_failed(event, event.payload)
            case BillingEventType.SUBSCRIPTION_DELETED:
                return self._subscription_deleted(event, event.payload)
            case BillingEventType.SUBSCRIPTION_UPDATED:
                return self._subscription_updated(event, event.payload)
            case BillingEventType.CHECKOUT_COMPLETED:
                return self._checkout_completed(event, event.payload)
            case BillingEventType.UNHANDLED:
                logger.warning("Unhandled billing event type: %s (%s)", event.raw_type, event.event_id)
                return self._outcome(event, BillingAction.UNHANDLED)

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _outcome(event: BillingEvent, action: BillingAction, tenant: Tenant | None = None) -> BillingOutcome:
        return BillingOutcome(
            event_id=event.event_id,
            event_type=event.raw_type,
            action=action,
            tenant_id=tenant.tenant_id if tenant else None,
        )

    def resolve(self, customer_id: str | None, event: BillingEvent) -> Tenant:
        if not customer_id:
            logger.error("Billing event %s (%s) has no customer id", event.event_id, event.raw_type)
            raise MissingCustomerError(f"Event {event.event_id} has no customer id")
        tenant = self.store.find_by_customer_id(customer_id)
        if tenant is None:
            logger.error("Project not found for customer %s (event %s)", customer_id, event.event_id)
            raise TenantNotFoundError(customer_id)
        return tenant

    def _write(self, event: BillingEvent, tenant: Tenant, update: PlanUpdate, action: BillingAction) -> BillingOutcome:
        updated = self.store.update_plan(tenant.tenant_id, update)
        logger.info(
            "Billing event %s (%s): project %s -> plan=%s status=%s [%s]",
            event.event_id, event.raw_type, updated.tenant_id,
            updated.plan.value, updated.status.value, action.value,
        )
        return self._outcome(event, action, updated)

    @staticmethod
    def _later(current: datetime | None, candidate: datetime | None) -> datetime | None:
        if current is None:
            return candidate
        if candidate is None:
            return current
        return max(current, candidate)

    def _downgrade(self, event: BillingEvent, tenant: Tenant) -> BillingOutcome:
        update = PlanUpdate(plan=Plan.FREE, status=SubscriptionStatus.CANCELED, clear_subscription=True)
        return self._write(event, tenant, update, BillingAction.DOWNGRADED)

    # -- transitions --------------------------------------------------------

    def _payment_succeeded(self, event: BillingEvent, payment: PaymentPayload) -> BillingOutcome:
        tenant = self.resolve(payment.customer_id, event)
        candidate = payment.period_end or (event.created + self.period)
        update = PlanUpdate(
            plan=Plan.PRO,
            status=SubscriptionStatus.ACTIVE,
            period_end=self._later(tenant.current_period_end, candidate),
            subscription_id=payment.subscription_id,
        )
        return self._write(event, tenant, update, BillingAction.ACTIVATED)

    def _payment_failed(self, event: BillingEvent, payment: PaymentPayload) -> BillingOutcome:
        tenant = self.resolve(payment.customer_id, event)
        reason = payment.failure_reason or DEFAULT_FAILURE_REASON
        logger.warning(
            "Payment failed for project %s (customer %s): %s",
            tenant.tenant_id, payment.customer_id, reason,
        )
        update = PlanUpdate(status=SubscriptionStatus.PAST_DUE, last_payment_error=reason)
        return self._write(event, tenant, update, BillingAction.PAST_DUE)

    def _subscription_deleted(self, event: BillingEvent, sub: SubscriptionPayload) -> BillingOutcome:
        tenant = self.resolve(sub.customer_id, event)
        if not sub.cancel_at_period_end:
            return self._downgrade(event, tenant)

        period_end = sub.current_period_end or tenant.current_period_end
        if period_end is None or period_end <= self._clock():
            # Nothing left to keep the plan for
            return self._downgrade(event, tenant)
        update = PlanUpdate(status=SubscriptionStatus.CANCELED, period_end=period_end)
        return self._write(event, tenant, update, BillingAction.DOWNGRADE_SCHEDULED)

    def _subscription_updated(self, event: BillingEvent, sub: SubscriptionPayload) -> BillingOutcome:
        tenant = self.resolve(sub.customer_id, event)
        if sub.status in ACTIVE_SUBSCRIPTION_STATUSES:
            update = PlanUpdate(
                plan=Plan.PRO,
                status=SubscriptionStatus.ACTIVE,
                period_end=sub.current_period_end,
                subscription_id=sub.subscription_id,
            )
            return self._write(event, tenant, update, BillingAction.ACTIVATED)
        if sub.status in ENDED_SUBSCRIPTION_STATUSES:
            return self._downgrade(event, tenant)
        if sub.status in PAST_DUE_SUBSCRIPTION_STATUSES:
            update = PlanUpdate(status=SubscriptionStatus.PAST_DUE)
            return self._write(event, tenant, update, BillingAction.PAST_DUE)

        logger.info(
            "Ignoring subscription %s status %r for project %s",
            sub.subscription_id, sub.status, tenant.tenant_id,
        )
        return self._outcome(event, BillingAction.IGNORED, tenant)

    def _checkout_completed(self, event: BillingEvent, session: CheckoutPayload) -> BillingOutcome:
        if session.project_id:
            tenant = self.store.get(session.project_id)
            if tenant is None:
                logger.error("Checkout %s references unknown project %s", session.session_id, session.project_id)
                raise TenantNotFoundError(session.customer_id, f"Project {session.project_id} not found")
        else:
            tenant = self.resolve(session.customer_id, event)

        update = PlanUpdate(
            plan=Plan.PRO,
            status=SubscriptionStatus.ACTIVE,
            period_end=self._later(tenant.current_period_end, event.created + self.period),
            subscription_id=session.subscription_id,
            customer_id=session.customer_id,
        )
        return self._write(event, tenant, update, BillingAction.ACTIVATED)
