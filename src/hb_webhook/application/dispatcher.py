"""WebhookDispatcher — signed, single-attempt fan-out to user subscriptions.

Delivery never raises into the business operation that triggered it: every
failure ends up in webhook_logs and the subscription's fail_count. There is no
retry; the tenth consecutive failure deactivates the subscription.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.hb_common.database import async_session_factory
from src.hb_common.datetime_utils import utc_now
from src.hb_common.enums import WebhookEvent
from src.hb_webhook.domain.signing import build_payload, sign_payload, truncate_body
from src.hb_webhook.infrastructure.persistence import Webhook, WebhookRepository

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    webhook_id: str
    success: bool
    response_code: int | None = None
    response_body: str | None = None


class WebhookDispatcher:
    def __init__(
        self,
        repo: WebhookRepository | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repo = repo or WebhookRepository()
        self._session_factory = session_factory or async_session_factory
        self._transport = transport
        # Strong references so pending deliveries are not garbage-collected
        self._background: set[asyncio.Task[list[DeliveryResult]]] = set()

    async def trigger(
        self, user_id: str, event: WebhookEvent, data: dict[str, Any]
    ) -> list[DeliveryResult]:
        """Deliver ``event`` to every active subscription of the user listening for it."""
        try:
            async with self._session_factory() as db:
                webhooks = await self._repo.list_active_for_event(db, user_id, event.value)
                if not webhooks:
                    return []
                return await self.deliver(db, webhooks, event, data)
        except Exception:
            logger.exception("Webhook trigger failed user=%s event=%s", user_id, event.value)
            return []

    async def deliver(
        self,
        db: AsyncSession,
        webhooks: list[Webhook],
        event: WebhookEvent,
        data: dict[str, Any],
    ) -> list[DeliveryResult]:
        """Send concurrently, then record every attempt and commit."""
        body = build_payload(event.value, data, utc_now())
        payload = json.loads(body)

        async with httpx.AsyncClient(
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            results = await asyncio.gather(
                *(self._send(client, w, event, body) for w in webhooks)
            )

        try:
            for result in results:
                fail_count, is_active = await self._repo.record_attempt(
                    db,
                    result.webhook_id,
                    event.value,
                    payload,
                    result.response_code,
                    truncate_body(result.response_body),
                    result.success,
                    settings.WEBHOOK_MAX_FAILURES,
                )
                if not result.success and not is_active:
                    logger.warning(
                        "Webhook %s deactivated after %d consecutive failures",
                        result.webhook_id, fail_count,
                    )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return list(results)

    async def _send(
        self,
        client: httpx.AsyncClient,
        webhook: Webhook,
        event: WebhookEvent,
        body: bytes,
    ) -> DeliveryResult:
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(webhook.secret, body),
            "X-Webhook-Event": event.value,
        }
        try:
            response = await client.post(webhook.url, content=body, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("Webhook %s delivery error: %s", webhook.id, exc)
            return DeliveryResult(webhook.id, False, None, str(exc) or type(exc).__name__)
        return DeliveryResult(
            webhook.id,
            response.is_success,
            response.status_code,
            response.text,
        )

    def fire_and_forget(
        self, user_id: str, event: WebhookEvent, data: dict[str, Any]
    ) -> asyncio.Task[list[DeliveryResult]]:
        """Schedule ``trigger`` on the running loop and return immediately.

        Call only after the triggering transaction has committed.
        """
        task = asyncio.create_task(self.trigger(user_id, event, data))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled deliveries; called on application shutdown."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)


dispatcher = WebhookDispatcher()
