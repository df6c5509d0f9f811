from .dispatcher import DispatchSummary, WebhookDispatcher
from .executor import DeliveryExecutor
from .registry import WebhookRegistry
from .retry import RetryDecision, RetryScheduler
from .signer import WebhookSigner
from .store import InMemoryDeliveryStore, InMemoryWebhookStore
from .transformer import PayloadTransformer

__all__ = [
    "WebhookDispatcher",
    "DispatchSummary",
    "DeliveryExecutor",
    "WebhookRegistry",
    "RetryScheduler",
    "RetryDecision",
    "WebhookSigner",
    "InMemoryDeliveryStore",
    "InMemoryWebhookStore",
    "PayloadTransformer",
]
