"""Unit tests for the auth, role and cron-secret dependencies."""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from src.hb_common.errors import AccountDisabledError, AdminRequiredError
from src.hb_gateway.auth.dependencies import get_current_user, require_admin, require_cron
from src.hb_gateway.auth.jwt_handler import create_access_token, create_refresh_token
from src.hb_gateway.user.db_models import UserModel


def _user(role: str) -> UserModel:
    user = UserModel()
    user.id = uuid.uuid4()
    user.role = role
    user.is_active = True
    return user


class TestGetCurrentUser:
    async def test_active_user(self) -> None:
        user = _user("USER")
        db = AsyncMock()
        db.get.return_value = user
        assert await get_current_user(create_access_token(str(user.id)), db) is user
        db.get.assert_awaited_once_with(UserModel, user.id)

    async def test_refresh_token_rejected(self) -> None:
        db = AsyncMock()
        with pytest.raises(HTTPException) as exc:
            await get_current_user(create_refresh_token(str(uuid.uuid4())), db)
        assert exc.value.status_code == 401
        db.get.assert_not_awaited()

    async def test_non_uuid_subject(self) -> None:
        db = AsyncMock()
        with pytest.raises(HTTPException):
            await get_current_user(create_access_token("user-123"), db)
        db.get.assert_not_awaited()

    async def test_unknown_user(self) -> None:
        db = AsyncMock()
        db.get.return_value = None
        with pytest.raises(HTTPException):
            await get_current_user(create_access_token(str(uuid.uuid4())), db)

    async def test_disabled_user(self) -> None:
        user = _user("USER")
        user.is_active = False
        db = AsyncMock()
        db.get.return_value = user
        with pytest.raises(AccountDisabledError):
            await get_current_user(create_access_token(str(user.id)), db)


class TestRequireAdmin:
    async def test_admin_passes(self) -> None:
        admin = _user("ADMIN")
        assert await require_admin(admin) is admin

    async def test_user_rejected(self) -> None:
        with pytest.raises(AdminRequiredError):
            await require_admin(_user("USER"))


class TestRequireCron:
    async def test_valid_bearer(self) -> None:
        await require_cron("Bearer unit-test-cron-secret")

    async def test_scheme_is_case_insensitive(self) -> None:
        await require_cron("bearer unit-test-cron-secret")

    async def test_missing_header(self) -> None:
        with pytest.raises(HTTPException) as exc:
            await require_cron(None)
        assert exc.value.status_code == 401

    async def test_wrong_secret(self) -> None:
        with pytest.raises(HTTPException):
            await require_cron("Bearer wrong")

    async def test_wrong_scheme(self) -> None:
        with pytest.raises(HTTPException):
            await require_cron("Basic unit-test-cron-secret")

    async def test_non_ascii_token_is_unauthorized(self) -> None:
        with pytest.raises(HTTPException) as exc:
            await require_cron("Bearer s\u00e9cret")
        assert exc.value.status_code == 401
