"""FastAPI dependencies guarding the billing routes.

``get_current_user``: any active account holding a valid access token.
``require_admin``: the same, with the ADMIN role (refunds, bonuses, fraud review).
``require_cron``: the external scheduler, authenticated by CRON_SECRET.
"""

import hmac
import uuid

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.hb_common.database import get_db_session
from src.hb_common.enums import UserRole
from src.hb_common.errors import AccountDisabledError, AdminRequiredError, InvalidCredentialsError
from src.hb_gateway.auth.jwt_handler import decode_token
from src.hb_gateway.user.db_models import UserModel

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> UserModel:
    """401 for a bad token or unknown account, 403 for a disabled one."""
    try:
        claims = decode_token(token, expected_type="access")
        user_id = uuid.UUID(str(claims["sub"]))
    except (InvalidCredentialsError, ValueError):
        raise _unauthorized() from None

    user = await db.get(UserModel, user_id)
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise AccountDisabledError()
    return user


async def require_admin(
    current_user: UserModel = Depends(get_current_user),
) -> UserModel:
    if current_user.role != UserRole.ADMIN:
        raise AdminRequiredError()
    return current_user


async def require_cron(authorization: str | None = Header(None)) -> None:
    """``Authorization: Bearer <CRON_SECRET>``; an empty secret disables cron routes."""
    expected = settings.CRON_SECRET
    if not expected or authorization is None:
        raise _unauthorized()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(
        token.encode("utf-8", "surrogateescape"), expected.encode()
    ):
        raise _unauthorized()
