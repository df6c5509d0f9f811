import logging

from src.billing.idempotency import IdempotencyGuard
from src.billing.router import BillingEventRouter
from src.billing.verifier import InboundEventVerifier
from src.models.billing import BillingOutcome

logger = logging.getLogger(__name__)


class BillingWebhookProcessor:
    """verify -> parse -> idempotency check -> transition, for one request.

    Authenticity, malformed-body and resolution errors propagate to the
    caller as :mod:`src.billing.errors` exceptions.
    """

    def __init__(
        self,
        verifier: InboundEventVerifier,
        router: BillingEventRouter,
        guard: IdempotencyGuard,
    ):
        self.verifier = verifier
        self.router = router
        self.guard = guard

    def process(self, raw_body: bytes, signature_header: str | None) -> BillingOutcome:
        event = self.verifier.verify_and_parse(raw_body, signature_header)
        logger.debug("Verified billing event %s (%s)", event.event_id, event.raw_type)
        return self.guard.run(event.event_id, lambda: self.router.route(event))
