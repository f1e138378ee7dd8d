"""Accounts for the billing API: registration, login, token refresh.

Routers own the transaction (``async with db.begin()``); the service only
flushes. A new account starts at a zero balance with its own referral code
and, when registered through someone's link, a ``referred_by_id`` that the
first-purchase referral bonus pays out on.
"""

import logging
import uuid

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.datetime_utils import utc_now
from src.hb_common.enums import UserRole
from src.hb_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InternalError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    ReferralCodeError,
    UsernameExistsError,
)
from src.hb_gateway.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.hb_gateway.auth.password import hash_password, verify_password
from src.hb_gateway.user.db_models import LoginHistoryModel, UserModel
from src.hb_promo.domain.codes import generate_referral_code, normalize_code

logger = logging.getLogger(__name__)

_REFERRAL_CODE_ATTEMPTS = 5
_USER_AGENT_MAX = 500


class UserService:
    async def register(
        self,
        username: str,
        email: str,
        password: str,
        db: AsyncSession,
        referral_code: str | None = None,
    ) -> UserModel:
        result = await db.execute(
            select(UserModel.username, UserModel.email).where(
                or_(UserModel.username == username, UserModel.email == email)
            )
        )
        taken = result.all()
        if any(row.username == username for row in taken):
            raise UsernameExistsError()
        if taken:
            raise EmailExistsError()

        referrer_id = await self._resolve_referrer(db, referral_code) if referral_code else None
        user = UserModel(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=UserRole.USER.value,
            is_active=True,
            balance=0,
            referral_balance=0,
            referral_code=await self._unused_referral_code(db),
            referred_by_id=referrer_id,
        )
        db.add(user)
        await db.flush()
        logger.info("Registered user=%s referred_by=%s", user.id, referrer_id)
        return user

    async def login(
        self,
        username: str,
        password: str,
        db: AsyncSession,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[UserModel, str, str]:
        """Return (user, access_token, refresh_token).

        Unknown user and wrong password raise the same error. Each login is
        written to login_history, which the shared-IP fraud heuristic reads.
        """
        result = await db.execute(select(UserModel).where(UserModel.username == username))
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if not user.is_active:
            raise AccountDisabledError()

        db.add(
            LoginHistoryModel(
                user_id=user.id,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:_USER_AGENT_MAX] or None,
            )
        )
        await db.execute(
            update(UserModel).where(UserModel.id == user.id).values(last_login_at=utc_now())
        )
        logger.info("Login user=%s ip=%s", user.id, ip_address)

        return (
            user,
            create_access_token(str(user.id)),
            create_refresh_token(str(user.id)),
        )

    async def refresh(self, refresh_token: str, db: AsyncSession) -> str:
        """New access token, only while the account still exists and is active."""
        claims = decode_token(refresh_token, expected_type="refresh")
        user_id = str(claims["sub"])
        result = await db.execute(select(UserModel.is_active).where(UserModel.id == user_id))
        is_active = result.scalar_one_or_none()
        if is_active is None:
            raise InvalidRefreshTokenError()
        if not is_active:
            raise AccountDisabledError()
        return create_access_token(user_id)

    @staticmethod
    async def _resolve_referrer(db: AsyncSession, code: str) -> uuid.UUID:
        result = await db.execute(
            select(UserModel.id).where(UserModel.referral_code == normalize_code(code))
        )
        referrer_id = result.scalar_one_or_none()
        if referrer_id is None:
            raise ReferralCodeError("Referral code not found")
        return referrer_id

    @staticmethod
    async def _unused_referral_code(db: AsyncSession) -> str:
        for _ in range(_REFERRAL_CODE_ATTEMPTS):
            code = generate_referral_code()
            result = await db.execute(select(UserModel.id).where(UserModel.referral_code == code))
            if result.scalar_one_or_none() is None:
                return code
        raise InternalError("Could not allocate a referral code")
