"""
HMAC signature helpers for provider webhooks that sign the raw body.
"""

import hashlib
import hmac
from typing import Optional


def compute_hmac_sha256(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def verify_hmac_sha256(raw: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time comparison of a hex HMAC-SHA256 digest of `raw`."""
    if not secret or not signature:
        return False
    expected = compute_hmac_sha256(raw, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
