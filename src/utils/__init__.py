from .crypto import canonical_json, generate_secret, generate_signature, verify_signature
from .factories import BillingEventFactory, EventFactory, TenantFactory, WebhookFactory

__all__ = [
    "canonical_json", "generate_secret", "generate_signature", "verify_signature",
    "BillingEventFactory", "EventFactory", "TenantFactory", "WebhookFactory",
]
