from datetime import datetime, timedelta, timezone

import pytest

from src.api.server import WebhookServiceServer, build_service
from src.billing.idempotency import IdempotencyGuard, InMemoryProcessedEventStore
from src.billing.processor import BillingWebhookProcessor
from src.billing.router import BillingEventRouter
from src.billing.store import InMemoryTenantStore
from src.billing.verifier import InboundEventVerifier
from src.config import Settings
from src.models.delivery import AttemptResult, ErrorKind
from src.observability.alerting import AlertManager
from src.observability.metrics import MetricsCollector
from src.receiver.server import EndpointReceiver
from src.replay.manager import WebhookReplayManager
from src.utils.factories import BillingEventFactory, EventFactory, TenantFactory, WebhookFactory
from src.webhook_dispatcher.dispatcher import WebhookDispatcher
from src.webhook_dispatcher.executor import DeliveryExecutor
from src.webhook_dispatcher.registry import WebhookRegistry
from src.webhook_dispatcher.retry import RetryScheduler
from src.webhook_dispatcher.signer import WebhookSigner
from src.webhook_dispatcher.store import InMemoryDeliveryStore, InMemoryWebhookStore


WEBHOOK_SECRET = "whsec_test-secret-key-for-hmac"
BILLING_SECRET = "whsec_billing-test-secret"
CRON_SECRET = "cron-test-token"


class FakeClock:
    """Controllable UTC clock; ``seconds()`` serves the float-based components."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def seconds(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def scripted_result(outcome) -> AttemptResult:
    """Build an AttemptResult from an HTTP status, "refused", "timeout" or "crash"."""
    if isinstance(outcome, AttemptResult):
        return outcome
    if outcome == "refused":
        return AttemptResult(
            success=False, duration_ms=1.0,
            error_kind=ErrorKind.CONNECTION_ERROR, error="Connection refused",
        )
    if outcome == "timeout":
        return AttemptResult(
            success=False, duration_ms=5000.0,
            error_kind=ErrorKind.TIMEOUT, error="Request timeout after 5s",
        )
    success = 200 <= outcome < 300
    return AttemptResult(
        success=success,
        duration_ms=10.0 if success else 20.0,
        status_code=outcome,
        response_body="ok" if success else "error",
        error_kind=None if success else ErrorKind.HTTP_ERROR,
        error=None if success else f"HTTP {outcome}",
    )


class ScriptedExecutor:
    """Replaces the HTTP executor with queued outcomes (200 when the queue is empty)."""

    timeout_seconds = 30.0

    def __init__(self):
        self.outcomes: list = []
        self.calls: list[dict] = []

    def queue(self, *outcomes) -> "ScriptedExecutor":
        self.outcomes.extend(outcomes)
        return self

    def execute(self, delivery, webhook, payload, signature) -> AttemptResult:
        self.calls.append({
            "delivery_id": delivery.delivery_id,
            "webhook_id": webhook.webhook_id,
            "payload": payload,
            "signature": signature,
        })
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if outcome == "crash":
            raise RuntimeError("executor blew up")
        return scripted_result(outcome)


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def billing_secret():
    return BILLING_SECRET


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signer():
    return WebhookSigner(WEBHOOK_SECRET)


@pytest.fixture
def scheduler():
    return RetryScheduler()


@pytest.fixture
def delivery_store(clock):
    return InMemoryDeliveryStore(clock=clock)


@pytest.fixture
def webhook_store():
    return InMemoryWebhookStore()


@pytest.fixture
def registry(webhook_store, clock):
    return WebhookRegistry(webhook_store, clock=clock)


@pytest.fixture
def webhook(webhook_store):
    """Active generic-format webhook for proj_123 allowing three attempts."""
    return webhook_store.add(
        WebhookFactory.create(project_id="proj_123", secret=WEBHOOK_SECRET, max_retries=3)
    )


@pytest.fixture
def metrics(clock):
    return MetricsCollector(window_seconds=300, clock=clock.seconds)


@pytest.fixture
def alert_manager(metrics):
    return AlertManager(metrics=metrics, threshold=0.10)


@pytest.fixture
def scripted_executor():
    return ScriptedExecutor()


@pytest.fixture
def dispatcher(delivery_store, webhook_store, scripted_executor, scheduler, metrics, clock):
    return WebhookDispatcher(
        deliveries=delivery_store,
        webhooks=webhook_store,
        executor=scripted_executor,
        scheduler=scheduler,
        metrics=metrics,
        clock=clock,
    )


@pytest.fixture
def http_executor():
    return DeliveryExecutor(timeout_seconds=5)


@pytest.fixture
def http_dispatcher(delivery_store, webhook_store, http_executor, scheduler, metrics, clock):
    return WebhookDispatcher(
        deliveries=delivery_store,
        webhooks=webhook_store,
        executor=http_executor,
        scheduler=scheduler,
        metrics=metrics,
        clock=clock,
    )


@pytest.fixture
def replay_manager(delivery_store, webhook_store):
    return WebhookReplayManager(deliveries=delivery_store, webhooks=webhook_store)


@pytest.fixture
def receiver():
    server = EndpointReceiver(secret=WEBHOOK_SECRET)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def receiver_no_auth():
    """Receiver without signature verification."""
    server = EndpointReceiver()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def tenant_store(clock):
    return InMemoryTenantStore(clock=clock)


@pytest.fixture
def tenant(tenant_store):
    return tenant_store.add(TenantFactory.create(tenant_id="proj_123", customer_id="cus_123"))


@pytest.fixture
def router(tenant_store, clock):
    return BillingEventRouter(tenant_store, clock=clock)


@pytest.fixture
def processed_events():
    return InMemoryProcessedEventStore()


@pytest.fixture
def guard(processed_events, clock):
    return IdempotencyGuard(processed_events, clock=clock)


@pytest.fixture
def verifier(clock):
    return InboundEventVerifier(BILLING_SECRET, clock=clock.seconds)


@pytest.fixture
def processor(verifier, router, guard):
    return BillingWebhookProcessor(verifier=verifier, router=router, guard=guard)


@pytest.fixture
def webhook_factory():
    return WebhookFactory


@pytest.fixture
def event_factory():
    return EventFactory


@pytest.fixture
def billing_factory():
    return BillingEventFactory


@pytest.fixture
def cron_secret():
    return CRON_SECRET


@pytest.fixture
def service_settings():
    return Settings(
        _env_file=None,
        billing_webhook_secret=BILLING_SECRET,
        cron_secret=CRON_SECRET,
        webhook_timeout_seconds=5,
        rate_limit_max_requests=5,
    )


@pytest.fixture
def service(service_settings):
    """Fully wired service with one free tenant (proj_123 / cus_123)."""
    tenants = InMemoryTenantStore()
    tenants.add(TenantFactory.create(tenant_id="proj_123", customer_id="cus_123"))
    return build_service(service_settings, tenants=tenants)


@pytest.fixture
def service_server(service):
    server = WebhookServiceServer(service)
    server.start()
    yield server
    server.stop()
