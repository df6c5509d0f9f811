import json
import logging
import time

from src.billing.errors import (
    AuthenticityError,
    InvalidSignatureError,
    MalformedEventError,
    MissingSignatureError,
    StaleSignatureError,
)
from src.billing.events import parse_event
from src.models.billing import BillingEvent
from src.utils.crypto import compute_hmac, verify_raw_signature

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"
SIGNATURE_SCHEME = "v1"


def build_signature_header(raw_body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Header value a provider would send for ``raw_body`` (``t=...,v1=...``)."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    signed = f"{ts}.".encode("utf-8") + raw_body
    return f"t={ts},{SIGNATURE_SCHEME}={compute_hmac(signed, secret)}"


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as e:
                raise InvalidSignatureError("Signature header has a non-numeric timestamp") from e
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if timestamp is None:
        raise InvalidSignatureError("Signature header has no timestamp")
    if not signatures:
        raise InvalidSignatureError(f"Signature header has no {SIGNATURE_SCHEME} signature")
    return timestamp, signatures


class InboundEventVerifier:
    """Authenticates provider webhooks before anything reads the body.

    The body is only decoded after the HMAC over ``"<t>.<raw body>"`` matched,
    so an unsigned or forged request never reaches the JSON parser.
    """

    DEFAULT_TOLERANCE_SECONDS = 300

    def __init__(self, secret: str, tolerance_seconds: float | None = DEFAULT_TOLERANCE_SECONDS, clock=time.time):
        if not secret:
            raise ValueError("billing webhook secret must not be empty")
        self._secret = secret
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock

    def verify(self, raw_body: bytes, signature_header: str | None) -> None:
        """Raise an :class:`AuthenticityError` unless the header signs ``raw_body``.

        Every rejection is logged at ERROR as a security event.
        """
        try:
            self._check(raw_body, signature_header)
        except AuthenticityError as e:
            logger.error("Rejected billing webhook (%s): %s", type(e).__name__, e)
            raise

    def _check(self, raw_body: bytes, signature_header: str | None) -> None:
        if not signature_header:
            raise MissingSignatureError(f"missing {SIGNATURE_HEADER} header")

        timestamp, signatures = parse_signature_header(signature_header)
        signed = f"{timestamp}.".encode("utf-8") + raw_body
        if not any(verify_raw_signature(signed, self._secret, sig) for sig in signatures):
            raise InvalidSignatureError("No signatures found matching the expected signature")

        if self.tolerance_seconds and abs(self._clock() - timestamp) > self.tolerance_seconds:
            raise StaleSignatureError(f"Signature timestamp {timestamp} outside the tolerance zone")

    def verify_and_parse(self, raw_body: bytes, signature_header: str | None) -> BillingEvent:
        self.verify(raw_body, signature_header)
        try:
            envelope = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedEventError("Event body is not valid JSON") from e
        return parse_event(envelope)
