class DispatchError(Exception):
    """Base class for outbound delivery errors."""


class PayloadError(DispatchError):
    """Payload could not be built or signed. Retrying will not help."""


class DeliveryStateError(DispatchError):
    """A status transition would break the delivery lifecycle."""


class InvalidWebhookURLError(DispatchError, ValueError):
    pass


class UnknownEventTypeError(DispatchError, ValueError):
    pass


class WebhookNotFoundError(DispatchError, LookupError):
    pass


class LeaseLostError(DeliveryStateError):
    """The worker's claim on a delivery expired and was taken over."""
