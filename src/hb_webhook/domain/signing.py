"""Outbound webhook payloads, signatures and failure accounting — pure functions."""

import hashlib
import hmac
import json
import secrets
from datetime import datetime
from typing import Any

RESPONSE_BODY_LIMIT = 1000


def build_payload(event: str, data: dict[str, Any], now: datetime) -> bytes:
    """Serialize once; the exact bytes sent are the bytes signed."""
    return json.dumps(
        {"event": event, "timestamp": now.isoformat(), "data": data},
        separators=(",", ":"),
        default=str,
    ).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the body, keyed by the subscription secret."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def generate_secret() -> str:
    return secrets.token_hex(32)


def truncate_body(body: str | None) -> str | None:
    if body is None:
        return None
    return body[:RESPONSE_BODY_LIMIT]

