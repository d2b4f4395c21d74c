"""
Webhook signature verification.

The gateway signs `timestamp + raw_body` with HMAC-SHA256 and sends the
Base64 digest. Verification must run on the exact bytes received; any
re-serialization of the JSON body changes the digest.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Optional


def compute_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        timestamp.encode("utf-8") + raw_body,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    raw_body: Optional[bytes],
    timestamp: Optional[str],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Return True only when every input is present and the signature matches."""
    if not raw_body or not timestamp or not signature or not secret:
        return False
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    try:
        expected = compute_signature(raw_body, timestamp, secret)
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))
    except (TypeError, ValueError, UnicodeError):
        return False


def is_fresh_timestamp(timestamp: Optional[str], tolerance_seconds: int, now: Optional[float] = None) -> bool:
    """Replay window check; tolerance 0 disables it.

    Accepts epoch seconds or epoch milliseconds.
    """
    if tolerance_seconds <= 0:
        return True
    try:
        ts = float(timestamp or "")
    except ValueError:
        return False
    if ts > 1e12:
        ts /= 1000.0
    current = time.time() if now is None else now
    return abs(current - ts) <= tolerance_seconds
