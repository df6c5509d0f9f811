from .errors import (
    AuthenticityError,
    BillingError,
    EventInProgressError,
    InvalidSignatureError,
    MalformedEventError,
    MissingCustomerError,
    MissingSignatureError,
    ResolutionError,
    StaleSignatureError,
    TenantNotFoundError,
)
from .events import parse_event
from .expiry import downgrade_expired
from .idempotency import IdempotencyGuard, InMemoryProcessedEventStore
from .processor import BillingWebhookProcessor
from .router import BillingEventRouter
from .store import InMemoryTenantStore
from .verifier import InboundEventVerifier, build_signature_header

__all__ = [
    "AuthenticityError", "BillingError", "EventInProgressError", "InvalidSignatureError",
    "MalformedEventError", "MissingCustomerError", "MissingSignatureError",
    "ResolutionError", "StaleSignatureError", "TenantNotFoundError",
    "parse_event", "downgrade_expired",
    "IdempotencyGuard", "InMemoryProcessedEventStore",
    "BillingWebhookProcessor", "BillingEventRouter", "InMemoryTenantStore",
    "InboundEventVerifier", "build_signature_header",
]
