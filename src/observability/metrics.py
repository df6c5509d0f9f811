import threading
import time
from dataclasses import dataclass
from typing import Callable

from src.models.delivery import AttemptResult


@dataclass(frozen=True)
class _Sample:
    at: float
    success: bool
    event_type: str | None
    duration_ms: float | None


class MetricsCollector:
    """Rolling-window counters for delivery attempts.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests pass a
    fake so the window can be advanced without sleeping.
    """

    def __init__(self, window_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self._window_seconds = window_seconds
        self._clock = clock
        self._samples: list[_Sample] = []
        self._lock = threading.Lock()

    def _record(self, success: bool, event_type: str | None, duration_ms: float | None) -> None:
        with self._lock:
            self._samples.append(_Sample(self._clock(), success, event_type, duration_ms))

    def record_success(self, event_type: str | None = None, duration_ms: float | None = None) -> None:
        self._record(True, event_type, duration_ms)

    def record_failure(self, event_type: str | None = None, duration_ms: float | None = None) -> None:
        self._record(False, event_type, duration_ms)

    def record_attempt(self, result: AttemptResult, event_type: str | None = None) -> None:
        self._record(result.success, event_type, result.duration_ms)

    def _window(self, event_type: str | None = None) -> list[_Sample]:
        # Caller holds the lock
        cutoff = self._clock() - self._window_seconds
        self._samples = [s for s in self._samples if s.at >= cutoff]
        if event_type is None:
            return list(self._samples)
        return [s for s in self._samples if s.event_type == event_type]

    def failure_rate(self, event_type: str | None = None) -> float:
        """Failure rate in the current rolling window (0.0 to 1.0)."""
        with self._lock:
            samples = self._window(event_type)
        if not samples:
            return 0.0
        return sum(1 for s in samples if not s.success) / len(samples)

    def total_in_window(self) -> int:
        with self._lock:
            return len(self._window())

    def failure_count_in_window(self) -> int:
        with self._lock:
            return sum(1 for s in self._window() if not s.success)

    def success_count_in_window(self) -> int:
        with self._lock:
            return sum(1 for s in self._window() if s.success)

    def average_duration_ms(self) -> float:
        with self._lock:
            durations = [s.duration_ms for s in self._window() if s.duration_ms is not None]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def snapshot(self) -> dict:
        with self._lock:
            samples = self._window()
        failures = sum(1 for s in samples if not s.success)
        by_type: dict[str, dict[str, int]] = {}
        for s in samples:
            bucket = by_type.setdefault(s.event_type or "unknown", {"success": 0, "failure": 0})
            bucket["success" if s.success else "failure"] += 1
        return {
            "window_seconds": self._window_seconds,
            "total": len(samples),
            "failures": failures,
            "failure_rate": failures / len(samples) if samples else 0.0,
            "by_event_type": by_type,
        }

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
