"""Unit tests for user service (mocked DB)."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.hb_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InternalError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    ReferralCodeError,
    UsernameExistsError,
)
from src.hb_gateway.auth.jwt_handler import create_access_token, create_refresh_token
from src.hb_gateway.user.db_models import LoginHistoryModel, UserModel
from src.hb_gateway.user.service import UserService


def _make_user(is_active: bool = True) -> UserModel:
    user = UserModel()
    user.id = uuid.uuid4()
    user.username = "alice"
    user.email = "alice@example.com"
    user.password_hash = "$2b$12$fakehash"
    user.is_active = is_active
    user.role = "USER"
    return user


def _scalar(value: object) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _taken(*pairs: tuple[str, str]) -> MagicMock:
    rows = []
    for username, email in pairs:
        row = MagicMock()
        row.username = username
        row.email = email
        rows.append(row)
    result = MagicMock()
    result.all.return_value = rows
    return result


@pytest.fixture
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def service() -> UserService:
    return UserService()


class TestRegister:
    async def test_duplicate_username(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_taken(("alice", "alice@example.com")))
        with pytest.raises(UsernameExistsError):
            await service.register("alice", "new@email.com", "Pass1word", mock_db)

    async def test_duplicate_email(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_taken(("alice", "alice@example.com")))
        with pytest.raises(EmailExistsError):
            await service.register("newuser", "alice@example.com", "Pass1word", mock_db)

    async def test_unknown_referral_code(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(side_effect=[_taken(), _scalar(None)])
        with pytest.raises(ReferralCodeError):
            await service.register(
                "newuser", "new@example.com", "Pass1word", mock_db, referral_code="nope"
            )

    async def test_links_referrer_and_starts_at_zero(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        referrer_id = uuid.uuid4()
        mock_db.execute = AsyncMock(
            side_effect=[_taken(), _scalar(referrer_id), _scalar(None)]
        )
        with patch("src.hb_gateway.user.service.hash_password", return_value="hashed"):
            user = await service.register(
                "newuser", "new@example.com", "Pass1word", mock_db, referral_code=" abc123 "
            )

        assert user.referred_by_id == referrer_id
        assert user.balance == 0
        assert user.role == "USER"
        mock_db.add.assert_called_once_with(user)
        mock_db.flush.assert_awaited_once()

    async def test_referral_code_collision_retried(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        mock_db.execute = AsyncMock(
            side_effect=[_taken(), _scalar(uuid.uuid4()), _scalar(None)]
        )
        with (
            patch("src.hb_gateway.user.service.hash_password", return_value="hashed"),
            patch(
                "src.hb_gateway.user.service.generate_referral_code",
                side_effect=["TAKEN000", "FRESH001"],
            ),
        ):
            user = await service.register("newuser", "new@example.com", "Pass1word", mock_db)
        assert user.referral_code == "FRESH001"

    async def test_referral_code_space_exhausted(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        mock_db.execute = AsyncMock(
            side_effect=[_taken()] + [_scalar(uuid.uuid4()) for _ in range(5)]
        )
        with (
            patch("src.hb_gateway.user.service.hash_password", return_value="hashed"),
            pytest.raises(InternalError),
        ):
            await service.register("newuser", "new@example.com", "Pass1word", mock_db)
        mock_db.add.assert_not_called()


class TestLogin:
    async def test_wrong_username(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(None))
        with pytest.raises(InvalidCredentialsError):
            await service.login("nobody", "Pass1word", mock_db)

    async def test_wrong_password(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user()))
        with (
            patch("src.hb_gateway.user.service.verify_password", return_value=False),
            pytest.raises(InvalidCredentialsError),
        ):
            await service.login("alice", "WrongPass1", mock_db)

    async def test_disabled_account(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user(is_active=False)))
        with (
            patch("src.hb_gateway.user.service.verify_password", return_value=True),
            pytest.raises(AccountDisabledError),
        ):
            await service.login("alice", "Pass1word", mock_db)

    async def test_success_records_login_history(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user()))
        with patch("src.hb_gateway.user.service.verify_password", return_value=True):
            user, access, refresh = await service.login(
                "alice", "Pass1word", mock_db, ip_address="10.0.0.1", user_agent="x" * 600
            )

        assert user.username == "alice"
        assert access != refresh
        history = mock_db.add.call_args.args[0]
        assert isinstance(history, LoginHistoryModel)
        assert history.ip_address == "10.0.0.1"
        assert len(history.user_agent) == 500


class TestRefresh:
    async def test_invalid_token(self, service: UserService, mock_db: AsyncMock) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh("not.a.real.token", mock_db)
        mock_db.execute.assert_not_awaited()

    async def test_access_token_rejected(self, service: UserService, mock_db: AsyncMock) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh(create_access_token("user-123"), mock_db)

    async def test_deleted_account(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(None))
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh(create_refresh_token("user-123"), mock_db)

    async def test_disabled_account(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(False))
        with pytest.raises(AccountDisabledError):
            await service.refresh(create_refresh_token("user-123"), mock_db)

    async def test_issues_new_access_token(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(True))
        token = await service.refresh(create_refresh_token("user-123"), mock_db)
        assert token
