import base64
import hashlib
import hmac


def flow_signature(secret: str, raw_body: bytes) -> str:
    """Base64 HMAC-SHA256 of the raw request body keyed by the shared secret."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_flow_signature(raw_body: bytes, sent: str | None, secret: str | None) -> bool:
    if not secret:
        return True
    if not sent:
        return False
    return hmac.compare_digest(sent.strip(), flow_signature(secret, raw_body))


def verify_bearer(authorization: str | None, secret: str | None) -> bool:
    if not secret:
        return True
    return hmac.compare_digest((authorization or "").encode("utf-8"), f"Bearer {secret}".encode("utf-8"))
