from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DeliveryStatus(Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


class ErrorKind(Enum):
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    REQUEST_ERROR = "request_error"
    PERMANENT = "permanent"


@dataclass
class Delivery:
    delivery_id: str
    webhook_id: str
    event_id: str
    event_type: str
    event_data: dict
    event_timestamp: datetime
    max_attempts: int
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempt_count: int = 0
    payload: dict | None = None
    signature: str | None = None
    next_attempt_at: datetime | None = None
    locked_until: datetime | None = field(default=None, repr=False)
    claim_token: str | None = field(default=None, repr=False)
    http_status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    duration_ms: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        if self.locked_until is not None and self.locked_until > now:
            return False
        if self.status is DeliveryStatus.PENDING:
            return self.next_attempt_at is None or self.next_attempt_at <= now
        if self.status is DeliveryStatus.RETRYING:
            return self.next_attempt_at is not None and self.next_attempt_at <= now
        return False


@dataclass
class AttemptResult:
    """Outcome of one HTTP POST. Never persisted on its own."""

    success: bool
    duration_ms: float
    status_code: int | None = None
    response_body: str | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
