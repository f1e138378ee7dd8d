"""Webhook failure counting and auto-disable against PostgreSQL.

Run: pytest -m integration tests/integration/test_webhook_delivery.py -v
"""

from collections.abc import Awaitable, Callable

import httpx
import pytest
from sqlalchemy import text

from config.settings import settings
from src.hb_common.database import async_session_factory
from src.hb_common.enums import WebhookEvent
from src.hb_webhook.application.dispatcher import WebhookDispatcher
from src.hb_webhook.infrastructure.persistence import WebhookRepository

UserFactory = Callable[..., Awaitable[dict[str, str]]]

pytestmark = [pytest.mark.integration, pytest.mark.asyncio(loop_scope="session")]

EVENT = WebhookEvent.PAYMENT_COMPLETED


class _Receiver:
    """MockTransport handler that answers with a switchable status code."""

    def __init__(self, status: int) -> None:
        self.status = status
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status, text="receiver says no" if self.status >= 400 else "ok")


async def _subscribe(user_id: str) -> str:
    async with async_session_factory() as db:
        webhook = await WebhookRepository().create(
            db, user_id, "billing", "https://hooks.example.com/billing", [EVENT.value], "whsec_test"
        )
        await db.commit()
    return webhook.id


async def _state(webhook_id: str) -> tuple[int, bool]:
    async with async_session_factory() as db:
        row = (
            await db.execute(
                text("SELECT fail_count, is_active FROM webhooks WHERE id = :id"),
                {"id": webhook_id},
            )
        ).one()
    return row.fail_count, row.is_active


class TestAutoDisable:
    async def test_tenth_consecutive_failure_deactivates(self, make_user: UserFactory) -> None:
        user = await make_user()
        webhook_id = await _subscribe(user["user_id"])
        receiver = _Receiver(500)
        dispatcher = WebhookDispatcher(transport=httpx.MockTransport(receiver))

        for _ in range(settings.WEBHOOK_MAX_FAILURES - 1):
            results = await dispatcher.trigger(user["user_id"], EVENT, {"amount": 100})
            assert [r.success for r in results] == [False]
        assert await _state(webhook_id) == (settings.WEBHOOK_MAX_FAILURES - 1, True)

        await dispatcher.trigger(user["user_id"], EVENT, {"amount": 100})
        assert await _state(webhook_id) == (settings.WEBHOOK_MAX_FAILURES, False)

        calls = receiver.calls
        assert await dispatcher.trigger(user["user_id"], EVENT, {"amount": 100}) == []
        assert receiver.calls == calls

        async with async_session_factory() as db:
            logged = (
                await db.execute(
                    text("SELECT COUNT(*) FROM webhook_logs WHERE webhook_id = :id"),
                    {"id": webhook_id},
                )
            ).scalar_one()
        assert logged == settings.WEBHOOK_MAX_FAILURES

    async def test_success_resets_fail_count(self, make_user: UserFactory) -> None:
        user = await make_user()
        webhook_id = await _subscribe(user["user_id"])
        receiver = _Receiver(503)
        dispatcher = WebhookDispatcher(transport=httpx.MockTransport(receiver))

        for _ in range(3):
            await dispatcher.trigger(user["user_id"], EVENT, {"amount": 100})
        assert await _state(webhook_id) == (3, True)

        receiver.status = 200
        results = await dispatcher.trigger(user["user_id"], EVENT, {"amount": 100})
        assert [r.success for r in results] == [True]
        assert await _state(webhook_id) == (0, True)
