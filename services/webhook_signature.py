"""
Webhook signature verification for gateway-originated notifications.

Cashfree signs each delivery as base64(HMAC-SHA256(secret, timestamp + raw_body))
and sends the result in ``x-webhook-signature`` with the timestamp in
``x-webhook-timestamp``.
"""
import base64
import hashlib
import hmac
from typing import Optional


def compute_signature(secret: str, timestamp: str, payload: bytes) -> str:
    message = timestamp.encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    secret: Optional[str],
    payload: bytes,
    signature: Optional[str],
    timestamp: Optional[str],
) -> bool:
    """Return True only if the signature matches the raw body and timestamp."""
    if not secret or not signature or not timestamp:
        return False
    expected = compute_signature(secret, timestamp, payload)
    return hmac.compare_digest(expected, signature)
