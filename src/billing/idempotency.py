"""At-most-once application of provider events.

The provider delivers at least once, so the same event id can arrive again
after it was applied (retries) or while it is still being applied (parallel
redelivery). The guard keys on the provider's event id: a completed event
returns its recorded outcome, an in-flight one is refused so the provider
retries later, and a failed one is released so a retry can succeed.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Protocol

from src.billing.errors import EventInProgressError
from src.models.billing import BillingOutcome
from src.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedEvent:
    event_id: str
    outcome: BillingOutcome
    processed_at: datetime


class ProcessedEventStore(Protocol):
    def reserve(self, event_id: str) -> ProcessedEvent | None:
        """Mark ``event_id`` in flight, or return its record if already processed.

        Raises EventInProgressError when another caller holds the reservation.
        """
        ...

    def complete(self, event_id: str, outcome: BillingOutcome, processed_at: datetime) -> None: ...

    def release(self, event_id: str) -> None: ...

    def get(self, event_id: str) -> ProcessedEvent | None: ...


class InMemoryProcessedEventStore:
    def __init__(self):
        self._processed: dict[str, ProcessedEvent] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def reserve(self, event_id: str) -> ProcessedEvent | None:
        with self._lock:
            record = self._processed.get(event_id)
            if record is not None:
                return record
            if event_id in self._in_flight:
                raise EventInProgressError(f"Event {event_id} is already being processed")
            self._in_flight.add(event_id)
            return None

    def complete(self, event_id: str, outcome: BillingOutcome, processed_at: datetime) -> None:
        with self._lock:
            self._in_flight.discard(event_id)
            self._processed[event_id] = ProcessedEvent(event_id, outcome, processed_at)

    def release(self, event_id: str) -> None:
        with self._lock:
            self._in_flight.discard(event_id)

    def get(self, event_id: str) -> ProcessedEvent | None:
        with self._lock:
            return self._processed.get(event_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processed)


class IdempotencyGuard:
    def __init__(self, store: ProcessedEventStore, clock=utcnow):
        self.store = store
        self._clock = clock

    def run(self, event_id: str, apply: Callable[[], BillingOutcome]) -> BillingOutcome:
        """Call ``apply`` once per event id; repeats get the recorded outcome."""
        record = self.store.reserve(event_id)
        if record is not None:
            logger.info("Event %s already processed, skipping", event_id)
            return replace(record.outcome, duplicate=True)

        try:
            outcome = apply()
        except BaseException:
            self.store.release(event_id)
            raise
        self.store.complete(event_id, outcome, self._clock())
        return outcome
