"""Unit tests for failure-rate alerting."""

import pytest

from src.observability.alerting import AlertManager
from src.utils.factories import EventFactory
from src.webhook_dispatcher.dispatcher import WebhookDispatcher


pytestmark = pytest.mark.unit


class TestAlertManager:
    def test_no_alert_without_samples(self, alert_manager):
        assert alert_manager.check() is None

    def test_no_alert_at_threshold(self, alert_manager, metrics):
        """Exactly 10% failures does not exceed the threshold."""
        for _ in range(9):
            metrics.record_success()
        metrics.record_failure()
        assert alert_manager.check() is None

    def test_alert_above_threshold(self, alert_manager, metrics):
        for _ in range(8):
            metrics.record_success()
        metrics.record_failure()
        metrics.record_failure()

        alert = alert_manager.check()
        assert alert["type"] == "webhook_failure_rate"
        assert alert["failure_rate"] == 0.2
        assert alert["total_deliveries"] == 10
        assert alert["failed_deliveries"] == 2
        assert "exceeds threshold" in alert["message"]

    def test_alert_names_failing_event_types(self, alert_manager, metrics):
        metrics.record_success("feedback.created")
        metrics.record_failure("feedback.updated")
        metrics.record_failure("webhook.test")

        alert = alert_manager.check()
        assert alert["event_types"] == ["feedback.updated", "webhook.test"]
        assert "feedback.updated, webhook.test" in alert["message"]

    def test_alert_fires_once_until_recovery(self, alert_manager, metrics):
        """A sustained breach alerts once; recovery re-arms the alert."""
        metrics.record_failure()
        assert alert_manager.check() is not None
        assert alert_manager.check() is None

        for _ in range(20):
            metrics.record_success()
        assert alert_manager.check() is None

        for _ in range(10):
            metrics.record_failure()
        assert alert_manager.check() is not None
        assert len(alert_manager.get_alerts()) == 2

    def test_min_samples(self, metrics):
        manager = AlertManager(metrics, threshold=0.1, min_samples=5)
        metrics.record_failure()
        assert manager.check() is None

    def test_callback_invoked(self, metrics):
        received = []
        manager = AlertManager(metrics, callback=received.append)
        metrics.record_failure()
        manager.check()
        assert len(received) == 1

    def test_alert_logged(self, alert_manager, metrics, caplog):
        metrics.record_failure()
        with caplog.at_level("WARNING", logger="src.observability.alerting"):
            alert_manager.check()
        assert "Webhook failure rate" in caplog.text

    def test_reset(self, alert_manager, metrics):
        metrics.record_failure()
        alert_manager.check()
        alert_manager.reset()
        assert alert_manager.get_alerts() == []
        assert alert_manager.check() is not None


class TestDispatcherAlerts:
    def test_cycle_checks_alerts(self, delivery_store, webhook_store, scripted_executor, metrics, clock, webhook):
        """Each dispatch cycle evaluates the failure-rate alert."""
        alerts = AlertManager(metrics, threshold=0.1)
        dispatcher = WebhookDispatcher(
            delivery_store, webhook_store,
            executor=scripted_executor, metrics=metrics, alerts=alerts, clock=clock,
        )
        scripted_executor.queue(500)
        dispatcher.enqueue(EventFactory.create_event(project_id="proj_123"))
        dispatcher.run_cycle()
        assert len(alerts.get_alerts()) == 1
