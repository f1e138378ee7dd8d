"""Unit tests for bcrypt password hashing."""

from config.settings import settings
from src.hb_gateway.auth.password import hash_password, verify_password


class TestPasswordHashing:
    def test_uses_configured_cost(self) -> None:
        hashed = hash_password("MySecret1")
        assert hashed.startswith("$2")
        assert hashed.split("$")[2] == f"{settings.BCRYPT_ROUNDS:02d}"

    def test_verify(self) -> None:
        hashed = hash_password("MySecret1")
        assert verify_password("MySecret1", hashed) is True
        assert verify_password("WrongPass9", hashed) is False

    def test_salted(self) -> None:
        assert hash_password("MySecret1") != hash_password("MySecret1")

    def test_malformed_stored_hash(self) -> None:
        assert verify_password("MySecret1", "not-a-bcrypt-hash") is False
