"""Integration tests for responses that do not count as delivered."""

import pytest
import requests

from src.models.delivery import Delivery, DeliveryStatus, ErrorKind
from src.utils.factories import EventFactory, WebhookFactory
from src.webhook_dispatcher.executor import DeliveryExecutor


pytestmark = pytest.mark.integration


def single_delivery(webhook, event, delivery_id: str, clock) -> Delivery:
    return Delivery(
        delivery_id=delivery_id,
        webhook_id=webhook.webhook_id,
        event_id=event.event_id,
        event_type=event.event_type,
        event_data=event.data,
        event_timestamp=clock(),
        max_attempts=1,
    )


@pytest.fixture
def receiver_webhook(webhook_store, receiver_no_auth):
    return webhook_store.add(WebhookFactory.create(
        project_id="proj_123", url=receiver_no_auth.url, max_retries=1,
    ))


class TestNonSuccessResponses:
    """Only 2xx completes a delivery; with one attempt allowed anything else fails it."""

    @pytest.mark.parametrize("code", [301, 302, 400, 404, 410, 500, 503])
    def test_non_2xx_fails_single_attempt_webhook(
        self, http_dispatcher, delivery_store, receiver_no_auth, receiver_webhook, code
    ):
        receiver_no_auth.set_response_code(code)
        (delivery,) = http_dispatcher.enqueue(EventFactory.create_event(project_id="proj_123"))
        http_dispatcher.run_cycle()

        stored = delivery_store.get(delivery.delivery_id)
        assert stored.status is DeliveryStatus.FAILED
        assert stored.attempt_count == 1
        assert stored.http_status_code == code
        assert stored.error_message == f"HTTP {code}"

    def test_redirect_not_followed(self, receiver_no_auth, receiver_webhook, clock):
        """A 3xx is returned as-is instead of being followed."""
        receiver_no_auth.set_response_code(302)
        event = EventFactory.create_event(project_id="proj_123")
        delivery = single_delivery(receiver_webhook, event, "dlv_redirect", clock)
        result = DeliveryExecutor(timeout_seconds=5).execute(delivery, receiver_webhook, {"event": "x"}, "0" * 64)
        assert result.success is False
        assert result.status_code == 302
        assert result.error_kind is ErrorKind.HTTP_ERROR
        assert receiver_no_auth.attempt_count == 1

    def test_response_body_truncated(self, receiver_no_auth, receiver_webhook, clock):
        event = EventFactory.create_event(project_id="proj_123")
        delivery = single_delivery(receiver_webhook, event, "dlv_body", clock)
        result = DeliveryExecutor(timeout_seconds=5, body_limit=5).execute(
            delivery, receiver_webhook, {"event": "x"}, "0" * 64
        )
        assert result.success is True
        assert len(result.response_body) == 5

    def test_custom_session_used(self, receiver_no_auth, receiver_webhook, clock):
        """A shared requests.Session can be injected for connection reuse."""
        event = EventFactory.create_event(project_id="proj_123")
        delivery = single_delivery(receiver_webhook, event, "dlv_session", clock)
        with requests.Session() as session:
            result = DeliveryExecutor(timeout_seconds=5, session=session).execute(
                delivery, receiver_webhook, {"event": "x"}, "0" * 64
            )
        assert result.success is True
        assert result.status_code == 200
