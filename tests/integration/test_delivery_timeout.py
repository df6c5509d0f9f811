"""Integration tests for slow endpoints."""

import pytest

from src.models.delivery import Delivery, DeliveryStatus, ErrorKind
from src.utils.factories import EventFactory, WebhookFactory
from src.webhook_dispatcher.dispatcher import WebhookDispatcher
from src.webhook_dispatcher.executor import DeliveryExecutor


pytestmark = pytest.mark.integration


@pytest.fixture
def slow_webhook(webhook_store, receiver_no_auth):
    receiver_no_auth.set_response_delay(1.5)
    return webhook_store.add(WebhookFactory.create(
        project_id="proj_123", url=receiver_no_auth.url, max_retries=2,
    ))


class TestDeliveryTimeout:
    def test_timeout_is_a_failed_attempt(self, delivery_store, webhook_store, slow_webhook, clock):
        """A response slower than the timeout is recorded as a timeout and retried."""
        dispatcher = WebhookDispatcher(
            delivery_store, webhook_store,
            executor=DeliveryExecutor(timeout_seconds=0.5), clock=clock,
        )
        (delivery,) = dispatcher.enqueue(EventFactory.create_event(project_id="proj_123"))
        dispatcher.run_cycle()

        stored = delivery_store.get(delivery.delivery_id)
        assert stored.status is DeliveryStatus.RETRYING
        assert stored.attempt_count == 1
        assert stored.error_message.startswith("Request timeout")
        assert stored.http_status_code is None

    def test_executor_reports_timeout_kind(self, slow_webhook, clock):
        executor = DeliveryExecutor(timeout_seconds=0.5)
        event = EventFactory.create_event(project_id="proj_123")
        delivery = Delivery(
            delivery_id="dlv_timeout",
            webhook_id=slow_webhook.webhook_id,
            event_id=event.event_id,
            event_type=event.event_type,
            event_data=event.data,
            event_timestamp=clock(),
            max_attempts=2,
        )
        result = executor.execute(delivery, slow_webhook, {"event": "feedback.created"}, "0" * 64)
        assert result.success is False
        assert result.error_kind is ErrorKind.TIMEOUT
        assert result.duration_ms >= 500

    def test_fast_enough_response_succeeds(self, delivery_store, webhook_store, slow_webhook, receiver_no_auth, clock):
        receiver_no_auth.set_response_delay(0.1)
        dispatcher = WebhookDispatcher(
            delivery_store, webhook_store,
            executor=DeliveryExecutor(timeout_seconds=5), clock=clock,
        )
        (delivery,) = dispatcher.enqueue(EventFactory.create_event(project_id="proj_123"))
        dispatcher.run_cycle()
        assert delivery_store.get(delivery.delivery_id).status is DeliveryStatus.DELIVERED
