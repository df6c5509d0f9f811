import hashlib
import hmac
import json
import secrets

SECRET_PREFIX = "whsec_"


def canonical_json(payload: dict) -> bytes:
    """Serialize a payload the way it is signed and sent: sorted keys, compact, UTF-8."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def compute_hmac(message: bytes, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of raw bytes."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def generate_signature(payload: dict, secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload."""
    return compute_hmac(canonical_json(payload), secret)


def verify_signature(payload: dict, secret: str, signature: str) -> bool:
    """Verify HMAC-SHA256 signature against a webhook payload."""
    return verify_raw_signature(canonical_json(payload), secret, signature)


def verify_raw_signature(message: bytes, secret: str, signature: str | None) -> bool:
    if not signature:
        return False
    expected = compute_hmac(message, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def generate_secret() -> str:
    """New webhook signing secret (32 random bytes, hex)."""
    return SECRET_PREFIX + secrets.token_hex(32)
