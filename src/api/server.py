"""HTTP surface of the webhook service.

Routes:
    POST /billing/webhook   signed payment-provider events
    POST /webhooks/process  run one dispatch cycle (cron / manual trigger)
    GET  /health
"""

import hmac
import json
import logging
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from src.billing.errors import (
    AuthenticityError,
    EventInProgressError,
    MalformedEventError,
    MissingCustomerError,
    TenantNotFoundError,
)
from src.billing.expiry import downgrade_expired
from src.billing.idempotency import IdempotencyGuard, InMemoryProcessedEventStore
from src.billing.processor import BillingWebhookProcessor
from src.billing.router import BillingEventRouter
from src.billing.store import InMemoryTenantStore, TenantStore
from src.billing.verifier import SIGNATURE_HEADER, InboundEventVerifier
from src.config import Settings, get_settings
from src.observability.alerting import AlertManager
from src.observability.metrics import MetricsCollector
from src.ratelimit.limiter import FixedWindowRateLimiter
from src.utils.http import read_content_length
from src.webhook_dispatcher.dispatcher import WebhookDispatcher
from src.webhook_dispatcher.executor import DeliveryExecutor
from src.webhook_dispatcher.registry import WebhookRegistry
from src.webhook_dispatcher.retry import RetryScheduler
from src.webhook_dispatcher.store import InMemoryDeliveryStore, InMemoryWebhookStore

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024


@dataclass
class Response:
    status: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)


class WebhookService:
    """Request handling, independent of the HTTP server plumbing."""

    def __init__(
        self,
        processor: BillingWebhookProcessor,
        dispatcher: WebhookDispatcher,
        tenants: TenantStore,
        limiter: FixedWindowRateLimiter | None = None,
        cron_secret: str | None = None,
        registry: WebhookRegistry | None = None,
        trust_forwarded_for: bool = False,
    ):
        self.processor = processor
        self.dispatcher = dispatcher
        self.tenants = tenants
        self.registry = registry or WebhookRegistry(dispatcher.webhooks)
        self.limiter = limiter
        self.cron_secret = cron_secret
        self.trust_forwarded_for = trust_forwarded_for

    def billing_webhook(self, raw_body: bytes, headers) -> Response:
        try:
            outcome = self.processor.process(raw_body, headers.get(SIGNATURE_HEADER))
        except AuthenticityError as e:
            return Response(400, {"error": f"Webhook Error: {e}"})
        except MalformedEventError as e:
            return Response(400, {"error": f"Malformed event: {e}"})
        except MissingCustomerError as e:
            return Response(400, {"error": str(e)})
        except TenantNotFoundError as e:
            return Response(404, {"error": "project not found for customer", "customer_id": e.customer_id})
        except EventInProgressError as e:
            return Response(409, {"error": str(e)})
        return Response(200, outcome.to_dict())

    def _authorized(self, headers) -> bool:
        if not self.cron_secret:
            return True
        supplied = headers.get("Authorization", "")
        return hmac.compare_digest(supplied, f"Bearer {self.cron_secret}")

    def process_now(self, headers, client_ip: str) -> Response:
        rate_headers: dict[str, str] = {}
        if self.limiter is not None:
            result = self.limiter.hit(f"process:{client_ip}")
            rate_headers = result.headers()
            if not result.allowed:
                logger.warning("Rate limited process trigger from %s", client_ip)
                return Response(
                    429,
                    {"error": f"Too many requests. Try again in {result.retry_after} seconds."},
                    rate_headers,
                )
        if not self._authorized(headers):
            logger.warning("Rejected process trigger from %s: bad credentials", client_ip)
            return Response(401, {"error": "Unauthorized"}, rate_headers)

        summary = self.dispatcher.process_now()
        summary["downgraded"] = len(downgrade_expired(self.tenants))
        return Response(200, summary, rate_headers)


def client_ip(headers, peer: str, trust_forwarded_for: bool = False) -> str:
    """Rate-limit key for a request.

    Forwarding headers are client controlled, so they are only honoured when
    the service runs behind a proxy that sets them.
    """
    if not trust_forwarded_for:
        return peer
    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("X-Real-IP") or peer


class _ServiceHandler(BaseHTTPRequestHandler):
    def _send(self, response: Response) -> None:
        payload = json.dumps(response.body).encode()
        self.send_response(response.status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        if self.path == "/health":
            self._send(Response(200, {"status": "ok"}))
        else:
            self._send(Response(404, {"error": "not found"}))

    def do_POST(self):
        service: WebhookService = self.server.service  # type: ignore[attr-defined]
        content_length = read_content_length(self.headers)
        if content_length is None:
            self._send(Response(400, {"error": "invalid Content-Length"}))
            return
        if content_length > MAX_BODY_BYTES:
            self._send(Response(413, {"error": "payload too large"}))
            return
        body = self.rfile.read(content_length)

        try:
            if self.path == "/billing/webhook":
                response = service.billing_webhook(body, self.headers)
            elif self.path == "/webhooks/process":
                ip = client_ip(self.headers, self.client_address[0], service.trust_forwarded_for)
                response = service.process_now(self.headers, ip)
            else:
                response = Response(404, {"error": "not found"})
        except Exception:
            logger.exception("Error handling POST %s", self.path)
            response = Response(500, {"error": "Internal server error"})
        self._send(response)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class WebhookServiceServer:
    """Threaded HTTP server around a :class:`WebhookService`."""

    def __init__(self, service: WebhookService, host: str = "127.0.0.1", port: int = 0):
        self.service = service
        self._host = host
        self._port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ServiceHandler)
        self._server.service = self.service  # type: ignore[attr-defined]
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Webhook service listening on %s", self.base_url)

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def serve_forever(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ServiceHandler)
        self._server.service = self.service  # type: ignore[attr-defined]
        logger.info("Webhook service listening on %s:%d", self._host, self._server.server_address[1])
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()

    @property
    def base_url(self) -> str:
        return f"http://{self._host}:{self._port}"


def build_service(
    settings: Settings | None = None,
    tenants: TenantStore | None = None,
    deliveries: InMemoryDeliveryStore | None = None,
    webhooks: InMemoryWebhookStore | None = None,
) -> WebhookService:
    """Wire every component from settings. Stores default to the in-memory ones."""
    settings = settings or get_settings()
    if not settings.billing_webhook_secret:
        raise ValueError("FEEDBACK_WEBHOOKS_BILLING_WEBHOOK_SECRET must be set")

    tenants = tenants if tenants is not None else InMemoryTenantStore()
    webhooks = webhooks if webhooks is not None else InMemoryWebhookStore()
    metrics = MetricsCollector(window_seconds=settings.metrics_window_seconds)
    dispatcher = WebhookDispatcher(
        deliveries=deliveries if deliveries is not None else InMemoryDeliveryStore(),
        webhooks=webhooks,
        executor=DeliveryExecutor(
            timeout_seconds=settings.webhook_timeout_seconds,
            body_limit=settings.response_body_limit,
        ),
        scheduler=RetryScheduler(
            base_seconds=settings.backoff_base_seconds,
            max_seconds=settings.backoff_max_seconds,
        ),
        metrics=metrics,
        alerts=AlertManager(metrics, threshold=settings.alert_failure_threshold),
        batch_size=settings.dispatch_batch_size,
        concurrency=settings.dispatch_concurrency,
        lease_seconds=settings.claim_lease_seconds,
    )
    processor = BillingWebhookProcessor(
        verifier=InboundEventVerifier(
            settings.billing_webhook_secret,
            tolerance_seconds=settings.billing_signature_tolerance_seconds,
        ),
        router=BillingEventRouter(tenants, period_days=settings.payment_period_days),
        guard=IdempotencyGuard(InMemoryProcessedEventStore()),
    )
    limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    registry = WebhookRegistry(webhooks, default_max_retries=settings.default_max_attempts)
    return WebhookService(
        processor, dispatcher, tenants,
        limiter=limiter, cron_secret=settings.cron_secret, registry=registry,
        trust_forwarded_for=settings.trust_forwarded_for,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    server = WebhookServiceServer(build_service(settings), host=settings.host, port=settings.port)
    server.serve_forever()


if __name__ == "__main__":
    main()
