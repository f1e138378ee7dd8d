"""Tests for outbound webhooks: payload signing, delivery and subscription CRUD."""

import asyncio
import hashlib
import hmac
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.hb_common.enums import WebhookEvent
from src.hb_common.errors import WebhookDisabledError, WebhookLimitError, WebhookNotFoundError
from src.hb_webhook.application.dispatcher import WebhookDispatcher
from src.hb_webhook.application.schemas import CreateWebhookRequest
from src.hb_webhook.application.service import WebhookService
from src.hb_webhook.domain.signing import (
    RESPONSE_BODY_LIMIT,
    build_payload,
    generate_secret,
    sign_payload,
    truncate_body,
)
from src.hb_webhook.infrastructure.persistence import Webhook


def _webhook(webhook_id: str = "wh-1", url: str = "https://hooks.test/in") -> Webhook:
    return Webhook(
        id=webhook_id,
        user_id="user-1",
        name="ops",
        url=url,
        events=[WebhookEvent.PAYMENT_COMPLETED.value],
        secret="s3cret",
    )


class TestSigning:
    def test_payload_shape(self) -> None:
        now = datetime(2026, 10, 18, tzinfo=UTC)
        body = build_payload("PAYMENT_COMPLETED", {"amount": 100}, now)
        assert json.loads(body) == {
            "event": "PAYMENT_COMPLETED",
            "timestamp": now.isoformat(),
            "data": {"amount": 100},
        }
        assert b" " not in body

    def test_signature_is_hmac_of_exact_bytes(self) -> None:
        body = b'{"event":"X"}'
        expected = hmac.new(b"key", body, hashlib.sha256).hexdigest()
        assert sign_payload("key", body) == expected

    def test_secret_is_64_hex(self) -> None:
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_truncate(self) -> None:
        assert truncate_body(None) is None
        assert len(truncate_body("x" * 5000) or "") == RESPONSE_BODY_LIMIT


class TestDispatcherDeliver:
    async def test_success_and_failure_are_both_logged(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.host == "down.test":
                return httpx.Response(500, text="boom")
            return httpx.Response(200, text="ok")

        repo = AsyncMock()
        repo.record_attempt.return_value = (0, True)
        dispatcher = WebhookDispatcher(repo=repo, transport=httpx.MockTransport(handler))
        db = AsyncMock()

        results = await dispatcher.deliver(
            db,
            [_webhook("wh-1"), _webhook("wh-2", "https://down.test/in")],
            WebhookEvent.PAYMENT_COMPLETED,
            {"amount": 5000},
        )

        assert [r.success for r in results] == [True, False]
        assert results[1].response_code == 500
        assert repo.record_attempt.await_count == 2
        db.commit.assert_awaited_once()

        request = seen[0]
        assert request.headers["x-webhook-event"] == "PAYMENT_COMPLETED"
        assert request.headers["x-webhook-signature"] == sign_payload("s3cret", request.content)

    async def test_transport_error_is_a_failed_attempt(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        repo = AsyncMock()
        repo.record_attempt.return_value = (10, False)
        dispatcher = WebhookDispatcher(repo=repo, transport=httpx.MockTransport(handler))

        results = await dispatcher.deliver(
            AsyncMock(), [_webhook()], WebhookEvent.BALANCE_LOW, {"balance": 10}
        )

        assert results[0].success is False
        assert results[0].response_code is None
        assert "refused" in (results[0].response_body or "")

    async def test_trigger_never_raises(self) -> None:
        repo = AsyncMock()
        repo.list_active_for_event.side_effect = RuntimeError("db down")
        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=AsyncMock())
        session.__aexit__ = AsyncMock(return_value=False)
        dispatcher = WebhookDispatcher(repo=repo, session_factory=MagicMock(return_value=session))

        assert await dispatcher.trigger("user-1", WebhookEvent.PAYMENT_FAILED, {}) == []

    async def test_fire_and_forget_then_drain(self) -> None:
        dispatcher = WebhookDispatcher(repo=AsyncMock())
        started = asyncio.Event()

        async def fake_trigger(user_id, event, data):  # type: ignore[no-untyped-def]
            started.set()
            return []

        dispatcher.trigger = fake_trigger  # type: ignore[method-assign]
        task = dispatcher.fire_and_forget("user-1", WebhookEvent.BALANCE_LOW, {})
        await dispatcher.drain()

        assert started.is_set()
        assert task.done()


class TestWebhookService:
    async def test_create_respects_limit(self) -> None:
        repo = AsyncMock()
        repo.count_for_user.return_value = 10
        db = AsyncMock()
        body = CreateWebhookRequest(
            name="ops", url="https://hooks.test/in", events=[WebhookEvent.PAYMENT_COMPLETED]
        )
        with pytest.raises(WebhookLimitError):
            await WebhookService(repo=repo, webhook_dispatcher=MagicMock()).create(
                db, "user-1", body
            )
        db.rollback.assert_awaited_once()

    async def test_create_generates_secret(self) -> None:
        repo = AsyncMock()
        repo.count_for_user.return_value = 0
        repo.create.return_value = _webhook()
        body = CreateWebhookRequest(
            name="ops", url="https://hooks.test/in", events=[WebhookEvent.PAYMENT_COMPLETED]
        )
        await WebhookService(repo=repo, webhook_dispatcher=MagicMock()).create(
            AsyncMock(), "user-1", body
        )
        args = repo.create.await_args.args
        assert args[4] == ["PAYMENT_COMPLETED"]
        assert len(args[5]) == 64

    async def test_send_test_unknown_webhook(self) -> None:
        repo = AsyncMock()
        repo.get_for_user.return_value = None
        with pytest.raises(WebhookNotFoundError):
            await WebhookService(repo=repo, webhook_dispatcher=MagicMock()).send_test(
                AsyncMock(), "user-1", "wh-x", WebhookEvent.SERVER_CREATED
            )

    async def test_send_test_delivers_synchronously(self) -> None:
        repo = AsyncMock()
        repo.get_for_user.return_value = _webhook()
        dispatcher = AsyncMock()
        dispatcher.deliver.return_value = [MagicMock(success=True)]
        result = await WebhookService(repo=repo, webhook_dispatcher=dispatcher).send_test(
            AsyncMock(), "user-1", "wh-1", WebhookEvent.SERVER_CREATED
        )
        assert result.success is True
        assert dispatcher.deliver.await_args.args[3]["test"] is True

    async def test_send_test_refuses_disabled_webhook(self) -> None:
        repo = AsyncMock()
        webhook = _webhook()
        webhook.is_active = False
        repo.get_for_user.return_value = webhook
        dispatcher = AsyncMock()
        with pytest.raises(WebhookDisabledError):
            await WebhookService(repo=repo, webhook_dispatcher=dispatcher).send_test(
                AsyncMock(), "user-1", "wh-1", WebhookEvent.SERVER_CREATED
            )
        dispatcher.deliver.assert_not_awaited()
