import logging
from datetime import datetime

from src.billing.store import TenantStore
from src.models.billing import Tenant
from src.utils.clock import utcnow

logger = logging.getLogger(__name__)


def downgrade_expired(store: TenantStore, now: datetime | None = None) -> list[Tenant]:
    """Apply scheduled downgrades whose billing period has ended.

    Run from the same scheduler that triggers dispatch cycles. Safe to run
    repeatedly: a downgraded tenant is on the free plan and no longer matches.
    Each candidate is re-checked by the store at write time, so a tenant
    renewed after it was listed keeps its plan.
    """
    now = now or utcnow()
    downgraded = []
    for tenant in store.list_expired_cancellations(now):
        updated = store.downgrade_if_expired(tenant.tenant_id, now)
        if updated is None:
            logger.info("Project %s renewed before its downgrade, skipping", tenant.tenant_id)
            continue
        logger.info(
            "Project %s downgraded to free: period ended %s",
            tenant.tenant_id, tenant.current_period_end.isoformat(),
        )
        downgraded.append(updated)
    return downgraded
