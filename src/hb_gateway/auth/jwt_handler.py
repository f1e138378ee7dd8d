"""Access and refresh tokens for the billing API.

HS256 with JWT_SECRET. Claims: ``sub`` (user id), ``type``, a random ``jti``,
``iat`` and ``exp``. Tokens are not revocable; they stay valid until ``exp``.
"""

import uuid
from datetime import timedelta
from typing import Any, Literal

from jose import JWTError, jwt

from config.settings import settings
from src.hb_common.datetime_utils import utc_now
from src.hb_common.errors import InvalidCredentialsError, InvalidRefreshTokenError

TokenType = Literal["access", "refresh"]

_TTL: dict[str, timedelta] = {
    "access": timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
    "refresh": timedelta(days=settings.JWT_REFRESH_EXPIRE_DAYS),
}


def _issue(user_id: str, token_type: TokenType) -> str:
    now = utc_now()
    claims: dict[str, Any] = {
        "sub": user_id,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + _TTL[token_type],
    }
    return str(jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM))


def create_access_token(user_id: str) -> str:
    return _issue(user_id, "access")


def create_refresh_token(user_id: str) -> str:
    return _issue(user_id, "refresh")


def access_token_ttl_seconds() -> int:
    return int(_TTL["access"].total_seconds())


def decode_token(token: str, expected_type: TokenType) -> dict[str, Any]:
    """Return the claims of a valid, unexpired token of ``expected_type``.

    Failures raise InvalidCredentialsError for access tokens and
    InvalidRefreshTokenError for refresh tokens, so a refresh token is never
    accepted where an access token is expected and vice versa.
    """
    error = InvalidCredentialsError if expected_type == "access" else InvalidRefreshTokenError
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise error() from None
    if claims.get("type") != expected_type or not claims.get("sub"):
        raise error()
    return claims
