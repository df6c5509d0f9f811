"""Outbound webhook dispatcher.

One dispatch cycle claims a bounded batch of due deliveries and runs them in
a thread pool. For each delivery the pipeline is:

    transform payload -> sign -> POST -> retry decision -> persist

Transient failures (network, timeout, non-2xx) are absorbed here and only
show up in the cycle summary. Payload/signing failures are permanent and end
the delivery as ``failed`` without using an attempt.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from src.models.delivery import AttemptResult, Delivery, DeliveryStatus, ErrorKind
from src.models.webhook import DomainEvent, Webhook
from src.observability.alerting import AlertManager
from src.observability.metrics import MetricsCollector
from src.utils.clock import utcnow
from src.webhook_dispatcher.errors import DeliveryStateError, PayloadError, WebhookNotFoundError
from src.webhook_dispatcher.executor import DeliveryExecutor
from src.webhook_dispatcher.retry import RetryScheduler
from src.webhook_dispatcher.signer import WebhookSigner
from src.webhook_dispatcher.store import DeliveryStore, WebhookStore
from src.webhook_dispatcher.transformer import PayloadTransformer

logger = logging.getLogger(__name__)

TEST_EVENT_TYPE = "webhook.test"


@dataclass(frozen=True)
class DeliveryOutcome:
    delivery_id: str
    status: DeliveryStatus | None
    attempt_count: int
    duration_ms: float
    error: str | None = None


@dataclass(frozen=True)
class DispatchSummary:
    processed: int = 0
    delivered: int = 0
    failed: int = 0
    retrying: int = 0
    errors: int = 0
    avg_duration_ms: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: list[DeliveryOutcome]) -> "DispatchSummary":
        if not outcomes:
            return cls()
        return cls(
            processed=len(outcomes),
            delivered=sum(1 for o in outcomes if o.status is DeliveryStatus.DELIVERED),
            failed=sum(1 for o in outcomes if o.status is DeliveryStatus.FAILED),
            retrying=sum(1 for o in outcomes if o.status is DeliveryStatus.RETRYING),
            errors=sum(1 for o in outcomes if o.status is None),
            avg_duration_ms=round(sum(o.duration_ms for o in outcomes) / len(outcomes)),
        )

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "delivered": self.delivered,
            "failed": self.failed,
            "retrying": self.retrying,
            "errors": self.errors,
            "avg_duration_ms": self.avg_duration_ms,
        }


class WebhookDispatcher:
    """Queues deliveries for domain events and works them off in cycles."""

    DEFAULT_BATCH_SIZE = 100
    DEFAULT_CONCURRENCY = 10
    DEFAULT_LEASE_SECONDS = 120.0

    def __init__(
        self,
        deliveries: DeliveryStore,
        webhooks: WebhookStore,
        executor: DeliveryExecutor | None = None,
        scheduler: RetryScheduler | None = None,
        transformer: PayloadTransformer | None = None,
        metrics: MetricsCollector | None = None,
        alerts: AlertManager | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        clock=utcnow,
    ):
        self.deliveries = deliveries
        self.webhooks = webhooks
        self.executor = executor or DeliveryExecutor()
        self.scheduler = scheduler or RetryScheduler()
        self.transformer = transformer or PayloadTransformer()
        self.metrics = metrics
        self.alerts = alerts
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be positive")
        if lease_seconds <= self.executor.timeout_seconds:
            raise ValueError("lease_seconds must be longer than the request timeout")
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.lease_seconds = lease_seconds
        self._clock = clock

    # -- enqueueing ---------------------------------------------------------

    def _new_delivery(self, webhook: Webhook, event: DomainEvent) -> Delivery:
        return Delivery(
            delivery_id=f"dlv_{uuid.uuid4().hex[:16]}",
            webhook_id=webhook.webhook_id,
            event_id=event.event_id,
            event_type=event.event_type,
            event_data=dict(event.data),
            event_timestamp=event.timestamp,
            max_attempts=webhook.max_retries,
        )

    def enqueue(self, event: DomainEvent) -> list[Delivery]:
        """Create one pending delivery per active webhook subscribed to the event."""
        targets = self.webhooks.list_subscribed(event.project_id, event.event_type)
        queued = [self.deliveries.add(self._new_delivery(w, event)) for w in targets]
        logger.info(
            "Queued %d deliveries for %s (%s) in project %s",
            len(queued), event.event_type, event.event_id, event.project_id,
        )
        return queued

    def send_test(self, webhook_id: str) -> Delivery:
        webhook = self.webhooks.get(webhook_id)
        if webhook is None:
            raise WebhookNotFoundError(f"Webhook {webhook_id} not found")
        now = self._clock()
        event = DomainEvent(
            event_id=f"evt_test_{uuid.uuid4().hex[:12]}",
            project_id=webhook.project_id,
            event_type=TEST_EVENT_TYPE,
            timestamp=now,
            data={"message": "This is a test event", "webhook_id": webhook.webhook_id},
        )
        return self.deliveries.add(self._new_delivery(webhook, event))

    # -- dispatch -----------------------------------------------------------

    def run_cycle(self) -> DispatchSummary:
        """Claim and process one batch of due deliveries."""
        batch = self.deliveries.claim_due_deliveries(
            self.batch_size, self._clock(), self.lease_seconds
        )
        if not batch:
            logger.debug("No due webhook deliveries")
            return DispatchSummary()

        workers = min(self.concurrency, len(batch))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webhook-dispatch") as pool:
            outcomes = list(pool.map(self._safe_process, batch))

        summary = DispatchSummary.from_outcomes(outcomes)
        logger.info("Webhook dispatch cycle completed: %s", summary.to_dict())
        if self.alerts is not None:
            self.alerts.check()
        return summary

    def process_now(self) -> dict:
        """Operational trigger: run one cycle and report the pre-cycle backlog."""
        pending_before = self.deliveries.pending_count(self._clock())
        summary = self.run_cycle()
        return {**summary.to_dict(), "pending_before": pending_before}

    def _safe_process(self, delivery: Delivery) -> DeliveryOutcome:
        try:
            return self.process_delivery(delivery)
        except Exception:
            logger.exception("Unexpected error processing delivery %s", delivery.delivery_id)
            return DeliveryOutcome(
                delivery_id=delivery.delivery_id,
                status=None,
                attempt_count=delivery.attempt_count,
                duration_ms=0.0,
                error="internal error",
            )

    def _prepare(self, delivery: Delivery, webhook: Webhook | None) -> tuple[dict, str]:
        if webhook is None:
            raise PayloadError(f"Webhook {delivery.webhook_id} no longer exists")
        if not webhook.is_active:
            raise PayloadError(f"Webhook {webhook.webhook_id} is disabled")
        event = DomainEvent(
            event_id=delivery.event_id,
            project_id=webhook.project_id,
            event_type=delivery.event_type,
            timestamp=delivery.event_timestamp,
            data=delivery.event_data,
        )
        try:
            payload = self.transformer.transform(event, webhook.effective_format)
            signature = WebhookSigner(webhook.secret).sign(payload)
        except Exception as e:
            raise PayloadError(f"Could not build signed payload: {e}") from e
        return payload, signature

    def _still_claimed(self, delivery: Delivery) -> bool:
        if delivery.claim_token is None:
            return True
        return self.deliveries.renew_claim(
            delivery.delivery_id, delivery.claim_token, self._clock(), self.lease_seconds
        )

    def process_delivery(self, delivery: Delivery) -> DeliveryOutcome:
        """Run one attempt for a claimed delivery and persist the result.

        The lease is renewed when the attempt actually starts, so items that
        waited in the pool behind slow endpoints are not sent after another
        cycle has taken them over.
        """
        if not self._still_claimed(delivery):
            logger.warning("Lease on delivery %s lost before sending, skipping", delivery.delivery_id)
            return DeliveryOutcome(
                delivery.delivery_id, None, delivery.attempt_count, 0.0, "lease lost"
            )

        if delivery.attempt_count >= delivery.max_attempts:
            return self._fail_permanently(delivery, "No attempts remaining")

        webhook = self.webhooks.get(delivery.webhook_id)
        try:
            payload, signature = self._prepare(delivery, webhook)
        except PayloadError as e:
            return self._fail_permanently(delivery, str(e))

        attempt = delivery.attempt_count + 1
        logger.debug(
            "Delivering %s to webhook %s (attempt %d/%d)",
            delivery.delivery_id, webhook.webhook_id, attempt, delivery.max_attempts,
        )
        try:
            result = self.executor.execute(delivery, webhook, payload, signature)
        except Exception as e:
            logger.exception("Executor crashed for delivery %s", delivery.delivery_id)
            result = AttemptResult(
                success=False, duration_ms=0.0, error_kind=ErrorKind.REQUEST_ERROR, error=str(e)
            )

        decision = self.scheduler.decide(attempt, delivery.max_attempts, result.success, self._clock())
        if self.metrics is not None:
            self.metrics.record_attempt(result, delivery.event_type)

        try:
            self.deliveries.update_delivery_status(
                delivery.delivery_id,
                decision.status,
                attempt_count=attempt,
                http_status_code=result.status_code,
                response_body=result.response_body,
                error_message=result.error,
                duration_ms=result.duration_ms,
                next_attempt_at=decision.next_attempt_at,
                payload=payload,
                signature=signature,
                claim_token=delivery.claim_token,
            )
        except DeliveryStateError as e:
            logger.error("Could not record attempt for %s: %s", delivery.delivery_id, e)
            return DeliveryOutcome(delivery.delivery_id, None, attempt, result.duration_ms, str(e))

        if decision.status is DeliveryStatus.RETRYING:
            logger.warning(
                "Delivery %s failed (%s), retry %d scheduled in %.0fs",
                delivery.delivery_id, result.error, attempt, decision.delay_seconds,
            )
        elif decision.status is DeliveryStatus.FAILED:
            logger.info(
                "Delivery %s failed after %d attempts: %s",
                delivery.delivery_id, attempt, result.error,
            )
        else:
            logger.info("Delivery %s delivered on attempt %d", delivery.delivery_id, attempt)

        return DeliveryOutcome(
            delivery_id=delivery.delivery_id,
            status=decision.status,
            attempt_count=attempt,
            duration_ms=result.duration_ms,
            error=result.error,
        )

    def _fail_permanently(self, delivery: Delivery, reason: str) -> DeliveryOutcome:
        logger.error("Delivery %s failed permanently: %s", delivery.delivery_id, reason)
        try:
            self.deliveries.update_delivery_status(
                delivery.delivery_id,
                DeliveryStatus.FAILED,
                attempt_count=delivery.attempt_count,
                error_message=reason,
                duration_ms=0.0,
                claim_token=delivery.claim_token,
            )
        except DeliveryStateError as e:
            logger.error("Could not mark %s failed: %s", delivery.delivery_id, e)
            return DeliveryOutcome(delivery.delivery_id, None, delivery.attempt_count, 0.0, str(e))
        return DeliveryOutcome(
            delivery_id=delivery.delivery_id,
            status=DeliveryStatus.FAILED,
            attempt_count=delivery.attempt_count,
            duration_ms=0.0,
            error=reason,
        )
