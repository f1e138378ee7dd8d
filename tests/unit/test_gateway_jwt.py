"""Unit tests for access/refresh token handling."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from jose import jwt

from config.settings import settings
from src.hb_common.errors import InvalidCredentialsError, InvalidRefreshTokenError
from src.hb_gateway.auth.jwt_handler import (
    access_token_ttl_seconds,
    create_access_token,
    create_refresh_token,
    decode_token,
)


class TestIssue:
    def test_claims(self) -> None:
        claims = jwt.get_unverified_claims(create_access_token("user-123"))
        assert claims["sub"] == "user-123"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == access_token_ttl_seconds()

    def test_each_token_has_its_own_jti(self) -> None:
        first = jwt.get_unverified_claims(create_refresh_token("user-123"))
        second = jwt.get_unverified_claims(create_refresh_token("user-123"))
        assert first["type"] == "refresh"
        assert first["jti"] != second["jti"]


class TestDecode:
    def test_valid_access_token(self) -> None:
        claims = decode_token(create_access_token("user-abc"), expected_type="access")
        assert claims["sub"] == "user-abc"

    def test_access_token_is_not_a_refresh_token(self) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            decode_token(create_access_token("user-abc"), expected_type="refresh")

    def test_refresh_token_is_not_an_access_token(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(create_refresh_token("user-abc"), expected_type="access")

    def test_expired(self) -> None:
        with patch.dict(
            "src.hb_gateway.auth.jwt_handler._TTL", {"access": timedelta(seconds=-1)}
        ):
            token = create_access_token("user-abc")
        with pytest.raises(InvalidCredentialsError):
            decode_token(token, expected_type="access")

    def test_tampered_signature(self) -> None:
        token = create_access_token("user-abc")
        with pytest.raises(InvalidCredentialsError):
            decode_token(token[:-4] + "xxxx", expected_type="access")

    def test_foreign_secret(self) -> None:
        token = jwt.encode({"sub": "user-abc", "type": "access"}, "other-secret", "HS256")
        with pytest.raises(InvalidCredentialsError):
            decode_token(token, expected_type="access")

    def test_missing_subject(self) -> None:
        token = jwt.encode({"type": "access"}, settings.JWT_SECRET, settings.JWT_ALGORITHM)
        with pytest.raises(InvalidCredentialsError):
            decode_token(token, expected_type="access")
