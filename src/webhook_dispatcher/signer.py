from src.utils.crypto import canonical_json, generate_signature, verify_signature


class WebhookSigner:
    """Signs and verifies webhook payloads using HMAC-SHA256."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("signing secret must not be empty")
        self.secret = secret

    def sign(self, payload: dict) -> str:
        return generate_signature(payload, self.secret)

    def verify(self, payload: dict, signature: str) -> bool:
        return verify_signature(payload, self.secret, signature)

    @staticmethod
    def encode(payload: dict) -> bytes:
        """Exact request body whose bytes the signature covers."""
        return canonical_json(payload)
