import logging
import time

import requests

from src.models.delivery import AttemptResult, Delivery, ErrorKind
from src.models.webhook import Webhook
from src.webhook_dispatcher.signer import WebhookSigner

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0"
USER_AGENT = f"FeedbackWebhooks/{PROTOCOL_VERSION}"


class DeliveryExecutor:
    """Performs exactly one HTTP POST for a delivery and reports what happened.

    The executor never touches persisted state; the dispatcher decides what
    to do with the returned :class:`AttemptResult`.
    """

    DEFAULT_TIMEOUT_SECONDS = 30.0
    DEFAULT_BODY_LIMIT = 10_000

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        body_limit: int = DEFAULT_BODY_LIMIT,
        session: requests.Session | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.body_limit = body_limit
        self._session = session

    def build_headers(self, delivery: Delivery, webhook: Webhook, signature: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Webhook-Signature": signature,
            "X-Event-Type": delivery.event_type,
            "X-Event-ID": delivery.event_id,
            "X-Webhook-ID": webhook.webhook_id,
            "X-Webhook-Delivery": delivery.delivery_id,
            "X-Webhook-Version": PROTOCOL_VERSION,
        }

    def execute(
        self,
        delivery: Delivery,
        webhook: Webhook,
        payload: dict,
        signature: str,
    ) -> AttemptResult:
        body = WebhookSigner.encode(payload)
        headers = self.build_headers(delivery, webhook, signature)
        post = self._session.post if self._session is not None else requests.post

        start = time.monotonic()
        try:
            resp = post(
                webhook.url,
                data=body,
                headers=headers,
                timeout=self.timeout_seconds,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout:
            return self._failure(start, ErrorKind.TIMEOUT, f"Request timeout after {self.timeout_seconds}s")
        except requests.exceptions.ConnectionError as e:
            return self._failure(start, ErrorKind.CONNECTION_ERROR, str(e))
        except requests.exceptions.RequestException as e:
            return self._failure(start, ErrorKind.REQUEST_ERROR, str(e))

        elapsed_ms = (time.monotonic() - start) * 1000
        text = self._truncate(resp.text)
        success = 200 <= resp.status_code < 300
        logger.debug(
            "POST %s for delivery %s -> %d in %.1fms",
            webhook.url, delivery.delivery_id, resp.status_code, elapsed_ms,
        )
        return AttemptResult(
            success=success,
            duration_ms=elapsed_ms,
            status_code=resp.status_code,
            response_body=text,
            error_kind=None if success else ErrorKind.HTTP_ERROR,
            error=None if success else f"HTTP {resp.status_code}",
        )

    def _truncate(self, text: str | None) -> str | None:
        if text is None:
            return None
        return text[: self.body_limit]

    @staticmethod
    def _failure(start: float, kind: ErrorKind, message: str) -> AttemptResult:
        return AttemptResult(
            success=False,
            duration_ms=(time.monotonic() - start) * 1000,
            error_kind=kind,
            error=message,
        )
