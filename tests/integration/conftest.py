"""Integration-test fixtures.

All integration tests share a single event loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the whole test session.

Pre-condition: PostgreSQL and Redis are up and ``alembic upgrade head`` ran.
"""

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from config.settings import settings
from src.hb_common.database import async_session_factory
from src.main import app

UserFactory = Callable[..., Awaitable[dict[str, str]]]
TopUp = Callable[[dict[str, str], int], Awaitable[dict]]


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncIterator[AsyncClient]:
    """Session-scoped async HTTP client; keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def _sandbox_payments(monkeypatch: pytest.MonkeyPatch) -> None:
    # Balances are funded through the sandbox top-up path
    monkeypatch.setattr(settings, "PAYMENTS_TEST_MODE", True)


@pytest_asyncio.fixture(loop_scope="session")
async def make_user(client: AsyncClient) -> UserFactory:
    """Register a fresh user and return its id, credentials and auth header."""

    async def _make(role: str = "USER", referral_code: str | None = None) -> dict[str, str]:
        uid = uuid.uuid4().hex[:8]
        creds = {
            "username": f"billing_{uid}",
            "email": f"billing_{uid}@example.com",
            "password": "TestPass1",
        }
        reg = await client.post(
            "/api/v1/auth/register", json={**creds, "referral_code": referral_code}
        )
        assert reg.status_code == 201, reg.text
        user = reg.json()["data"]
        if role != "USER":
            async with async_session_factory() as db:
                await db.execute(
                    text("UPDATE users SET role = :role WHERE id = :id"),
                    {"role": role, "id": user["user_id"]},
                )
                await db.commit()
        login = await client.post(
            "/api/v1/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
        )
        token = login.json()["data"]["access_token"]
        return {
            "user_id": user["user_id"],
            "referral_code": user["referral_code"],
            "Authorization": f"Bearer {token}",
        }

    return _make


@pytest_asyncio.fixture(loop_scope="session")
async def top_up(client: AsyncClient) -> TopUp:
    """Fund a user through the sandbox top-up endpoint."""

    async def _top_up(user: dict[str, str], amount: int) -> dict:
        resp = await client.post(
            "/api/v1/billing/test-payment",
            json={"amount": amount},
            headers={"Authorization": user["Authorization"]},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    return _top_up
