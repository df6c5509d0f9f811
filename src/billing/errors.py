class BillingError(Exception):
    """Base class for inbound billing event errors."""


class AuthenticityError(BillingError):
    """The request could not be proven to come from the payment provider."""


class MissingSignatureError(AuthenticityError):
    pass


class InvalidSignatureError(AuthenticityError):
    pass


class StaleSignatureError(AuthenticityError):
    pass


class MalformedEventError(BillingError):
    """Signed body is not a usable event envelope."""


class ResolutionError(BillingError):
    """The event cannot be tied to a tenant."""


class MissingCustomerError(ResolutionError):
    pass


class TenantNotFoundError(ResolutionError):
    def __init__(self, customer_id: str | None, message: str | None = None):
        self.customer_id = customer_id
        super().__init__(message or f"Project not found for customer {customer_id}")


class EventInProgressError(BillingError):
    """Another request is applying the same event right now."""
