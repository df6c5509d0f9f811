from dataclasses import dataclass
from datetime import datetime, timedelta

from src.models.delivery import DeliveryStatus


@dataclass(frozen=True)
class RetryDecision:
    status: DeliveryStatus
    next_attempt_at: datetime | None = None
    delay_seconds: float | None = None


class RetryScheduler:
    """Decides the next state of a delivery after an attempt.

    Pure: the same inputs always produce the same decision. Delays grow as
    ``base * 2 ** (attempt - 1)`` and are capped at ``max_seconds``
    (5s, 10s, 20s, ... up to 1h with the defaults).
    """

    DEFAULT_BASE_SECONDS = 5.0
    DEFAULT_MAX_SECONDS = 3600.0

    # Exponent cap so the float math cannot overflow for absurd attempt numbers
    _MAX_EXPONENT = 62

    def __init__(
        self,
        base_seconds: float = DEFAULT_BASE_SECONDS,
        max_seconds: float = DEFAULT_MAX_SECONDS,
    ):
        if base_seconds < 0 or max_seconds < 0:
            raise ValueError("backoff intervals must be non-negative")
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds

    def backoff(self, attempt: int) -> float:
        """Delay in seconds after the given failed attempt (1-indexed)."""
        exponent = min(max(attempt - 1, 0), self._MAX_EXPONENT)
        return float(min(self.base_seconds * (2 ** exponent), self.max_seconds))

    def has_attempts_remaining(self, attempt: int, max_attempts: int) -> bool:
        return attempt < max_attempts

    def decide(
        self,
        attempt: int,
        max_attempts: int,
        succeeded: bool,
        now: datetime,
    ) -> RetryDecision:
        if succeeded:
            return RetryDecision(status=DeliveryStatus.DELIVERED)
        if not self.has_attempts_remaining(attempt, max_attempts):
            return RetryDecision(status=DeliveryStatus.FAILED)
        delay = self.backoff(attempt)
        return RetryDecision(
            status=DeliveryStatus.RETRYING,
            next_attempt_at=now + timedelta(seconds=delay),
            delay_seconds=delay,
        )
