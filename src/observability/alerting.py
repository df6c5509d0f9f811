import logging

from src.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

ALERT_TYPE = "webhook_failure_rate"


class AlertManager:
    """Fires once when the delivery failure rate crosses a threshold.

    The alert re-arms when the rate drops back to or below the threshold.
    ``min_samples`` keeps a single failed delivery from paging anyone.
    """

    def __init__(
        self,
        metrics: MetricsCollector,
        threshold: float = 0.10,
        min_samples: int = 1,
        callback=None,
    ):
        self.metrics = metrics
        self.threshold = threshold
        self.min_samples = min_samples
        self.callback = callback
        self._armed = True
        self._alerts: list[dict] = []

    def _build(self, snapshot: dict) -> dict:
        total, failed, rate = snapshot["total"], snapshot["failures"], snapshot["failure_rate"]
        failing_types = sorted(
            event_type for event_type, counts in snapshot["by_event_type"].items() if counts["failure"]
        )
        return {
            "type": ALERT_TYPE,
            "failure_rate": rate,
            "threshold": self.threshold,
            "total_deliveries": total,
            "failed_deliveries": failed,
            "event_types": failing_types,
            "message": (
                f"Webhook failure rate {rate:.1%} exceeds threshold {self.threshold:.1%} "
                f"({failed}/{total} attempts failed; {', '.join(failing_types)})"
            ),
        }

    def check(self) -> dict | None:
        """Return the alert dict the first time the threshold is exceeded, else None."""
        snapshot = self.metrics.snapshot()
        if snapshot["total"] == 0 or snapshot["total"] < self.min_samples:
            return None

        if snapshot["failure_rate"] <= self.threshold:
            self._armed = True
            return None
        if not self._armed:
            return None

        self._armed = False
        alert = self._build(snapshot)
        self._alerts.append(alert)
        logger.warning(alert["message"])
        if self.callback:
            self.callback(alert)
        return alert

    def get_alerts(self) -> list[dict]:
        return list(self._alerts)

    def reset(self) -> None:
        self._armed = True
        self._alerts.clear()
