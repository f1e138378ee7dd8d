"""Shared test fixtures."""

import os

# Settings() requires a JWT secret; must be set before any src import
os.environ.setdefault("JWT_SECRET", "unit-test-secret-not-for-production")
os.environ.setdefault("CRON_SECRET", "unit-test-cron-secret")
# Minimum bcrypt cost keeps hashing tests fast
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.main import app  # noqa: E402


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints (no lifespan, no DB)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
