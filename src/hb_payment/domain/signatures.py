"""Webhook signature checks for the providers that sign their callbacks.

Both helpers compare digests in constant time and return False (never raise)
for malformed headers.
"""

import hashlib
import hmac
import time

# Stripe's own libraries reject events older than five minutes
STRIPE_DEFAULT_TOLERANCE_SECONDS = 300


def _hmac_hex(key: bytes, message: bytes) -> str:
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def _digest_matches(expected: str, candidate: str) -> bool:
    # compare_digest raises TypeError on non-ASCII str
    return hmac.compare_digest(expected.encode(), candidate.encode("utf-8", "surrogateescape"))


def parse_stripe_header(header: str) -> tuple[str | None, list[str]]:
    """Split ``t=1700000000,v1=abc,v1=def`` into the timestamp and v1 signatures."""
    timestamp: str | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    body: bytes,
    header: str,
    secret: str,
    tolerance: int | None = STRIPE_DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """HMAC-SHA256 over ``"{t}.{body}"`` keyed by the endpoint secret."""
    if not header or not secret:
        return False
    timestamp, signatures = parse_stripe_header(header)
    if timestamp is None or not signatures:
        return False
    try:
        issued_at = int(timestamp)
    except ValueError:
        return False
    if tolerance is not None:
        current = time.time() if now is None else now
        if abs(current - issued_at) > tolerance:
            return False

    expected = _hmac_hex(secret.encode(), timestamp.encode() + b"." + body)
    return any(_digest_matches(expected, candidate) for candidate in signatures)


def verify_cryptopay_signature(body: bytes, signature: str, api_token: str) -> bool:
    """HMAC-SHA256 of the raw body keyed by ``sha256(api_token)``."""
    if not signature or not api_token:
        return False
    key = hashlib.sha256(api_token.encode()).digest()
    return _digest_matches(_hmac_hex(key, body), signature.strip().lower())
