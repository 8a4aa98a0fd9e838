"""
Webhook signature verification.

All functions operate on the raw request body exactly as received. Parsing
the JSON first and re-serializing it changes whitespace and breaks the HMAC.
Malformed signatures verify as False; nothing here raises on bad input.
"""

import hashlib
import hmac
import time
from typing import Optional


def compute_hmac_sha256(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of raw_body keyed with secret."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_hmac_sha256(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a hex HMAC-SHA256 signature (Lemon Squeezy style X-Signature).

    Comparison is constant-time over the decoded digests; a length mismatch
    only reveals that the signature is not a SHA-256 digest.
    """
    if not signature or not secret:
        return False

    try:
        received = bytes.fromhex(signature.strip())
    except ValueError:
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, received)


def parse_paddle_signature(header: Optional[str]) -> Optional[tuple[int, list[str]]]:
    """
    Split a Paddle-Signature header ("ts=1671552777;h1=abc...") into
    (timestamp, [h1 digests]). Returns None when the header is malformed.
    """
    if not header:
        return None

    timestamp: Optional[int] = None
    digests: list[str] = []
    for part in header.split(";"):
        key, sep, value = part.strip().partition("=")
        if not sep:
            return None
        if key == "ts":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == "h1":
            digests.append(value)

    if timestamp is None or not digests:
        return None
    return timestamp, digests


def verify_paddle_signature(
    raw_body: bytes,
    header: Optional[str],
    secret: Optional[str],
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a Paddle Billing webhook.

    Signed payload is "<ts>:<raw body>". When tolerance_seconds > 0, events
    whose timestamp is further than that from now are rejected (replay guard).
    """
    if not secret:
        return False

    parsed = parse_paddle_signature(header)
    if parsed is None:
        return False
    timestamp, digests = parsed

    if tolerance_seconds > 0:
        current = time.time() if now is None else now
        if abs(current - timestamp) > tolerance_seconds:
            return False

    signed_payload = f"{timestamp}:".encode("utf-8") + raw_body
    # Check every h1 so the result does not depend on which one matched
    results = [verify_hmac_sha256(signed_payload, digest, secret) for digest in digests]
    return any(results)
