import threading
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from src.billing.errors import TenantNotFoundError
from src.models.billing import Plan, PlanUpdate, SubscriptionStatus, Tenant
from src.utils.clock import utcnow


class TenantStore(Protocol):
    def get(self, tenant_id: str) -> Tenant | None: ...

    def find_by_customer_id(self, customer_id: str) -> Tenant | None: ...

    def update_plan(self, tenant_id: str, update: PlanUpdate) -> Tenant: ...

    def list_expired_cancellations(self, now: datetime) -> list[Tenant]: ...

    def downgrade_if_expired(self, tenant_id: str, now: datetime) -> Tenant | None: ...


def is_expired_cancellation(tenant: Tenant, now: datetime) -> bool:
    return (
        tenant.status is SubscriptionStatus.CANCELED
        and tenant.plan is not Plan.FREE
        and tenant.current_period_end is not None
        and tenant.current_period_end <= now
    )


class InMemoryTenantStore:
    """Thread-safe tenant billing state. Each update is applied under one lock."""

    def __init__(self, clock=utcnow):
        self._tenants: dict[str, Tenant] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def add(self, tenant: Tenant) -> Tenant:
        with self._lock:
            self._tenants[tenant.tenant_id] = tenant
            return replace(tenant)

    def get(self, tenant_id: str) -> Tenant | None:
        with self._lock:
            tenant = self._tenants.get(tenant_id)
            return replace(tenant) if tenant else None

    def find_by_customer_id(self, customer_id: str) -> Tenant | None:
        with self._lock:
            for tenant in self._tenants.values():
                if tenant.customer_id == customer_id:
                    return replace(tenant)
        return None

    def update_plan(self, tenant_id: str, update: PlanUpdate) -> Tenant:
        with self._lock:
            current = self._tenants.get(tenant_id)
            if current is None:
                raise TenantNotFoundError(None, f"Project {tenant_id} not found")
            updated = update.apply(current, now=self._clock())
            self._tenants[tenant_id] = updated
            return replace(updated)

    def list_expired_cancellations(self, now: datetime) -> list[Tenant]:
        """Canceled tenants still on a paid plan whose period has ended."""
        with self._lock:
            return [replace(t) for t in self._tenants.values() if is_expired_cancellation(t, now)]

    def downgrade_if_expired(self, tenant_id: str, now: datetime) -> Tenant | None:
        """Downgrade to free only if the tenant still is an expired cancellation.

        The check and the write happen under the same lock (a conditional
        ``UPDATE ... WHERE`` in SQL), so a renewal applied after the sweep
        listed the tenant wins. Returns None when nothing was changed.
        """
        with self._lock:
            current = self._tenants.get(tenant_id)
            if current is None or not is_expired_cancellation(current, now):
                return None
            update = PlanUpdate(plan=Plan.FREE, status=SubscriptionStatus.CANCELED, clear_subscription=True)
            updated = update.apply(current, now=self._clock())
            self._tenants[tenant_id] = updated
            return replace(updated)
