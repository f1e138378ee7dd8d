"""WebhookService — subscription CRUD for the owning user."""

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.hb_common.datetime_utils import utc_now
from src.hb_common.enums import WebhookEvent
from src.hb_common.errors import WebhookDisabledError, WebhookLimitError, WebhookNotFoundError
from src.hb_webhook.application.dispatcher import DeliveryResult, WebhookDispatcher, dispatcher
from src.hb_webhook.application.schemas import (
    CreateWebhookRequest,
    UpdateWebhookRequest,
    WebhookItem,
)
from src.hb_webhook.domain.signing import generate_secret
from src.hb_webhook.infrastructure.persistence import WebhookRepository


class WebhookService:
    def __init__(
        self,
        repo: WebhookRepository | None = None,
        webhook_dispatcher: WebhookDispatcher | None = None,
    ) -> None:
        self._repo = repo or WebhookRepository()
        self._dispatcher = webhook_dispatcher or dispatcher

    async def list_for_user(self, db: AsyncSession, user_id: str) -> list[WebhookItem]:
        webhooks = await self._repo.list_for_user(db, user_id)
        return [
            WebhookItem.from_domain(w, await self._repo.recent_logs(db, w.id))
            for w in webhooks
        ]

    async def create(
        self, db: AsyncSession, user_id: str, body: CreateWebhookRequest
    ) -> WebhookItem:
        try:
            if await self._repo.count_for_user(db, user_id) >= settings.WEBHOOK_MAX_PER_USER:
                raise WebhookLimitError(settings.WEBHOOK_MAX_PER_USER)
            webhook = await self._repo.create(
                db,
                user_id,
                body.name,
                str(body.url),
                [e.value for e in body.events],
                generate_secret(),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return WebhookItem.from_domain(webhook)

    async def update(
        self, db: AsyncSession, user_id: str, webhook_id: str, body: UpdateWebhookRequest
    ) -> WebhookItem:
        try:
            webhook = await self._repo.get_for_user(db, webhook_id, user_id)
            if webhook is None:
                raise WebhookNotFoundError(webhook_id)
            if body.name is not None:
                webhook.name = body.name
            if body.url is not None:
                webhook.url = str(body.url)
            if body.events is not None:
                webhook.events = [e.value for e in body.events]
            if body.is_active is not None:
                webhook.is_active = body.is_active
            updated = await self._repo.update(db, webhook)
            if updated is None:
                raise WebhookNotFoundError(webhook_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return WebhookItem.from_domain(updated)

    async def delete(self, db: AsyncSession, user_id: str, webhook_id: str) -> None:
        try:
            if not await self._repo.delete(db, webhook_id, user_id):
                raise WebhookNotFoundError(webhook_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    async def regenerate_secret(
        self, db: AsyncSession, user_id: str, webhook_id: str
    ) -> WebhookItem:
        try:
            webhook = await self._repo.set_secret(db, webhook_id, user_id, generate_secret())
            if webhook is None:
                raise WebhookNotFoundError(webhook_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return WebhookItem.from_domain(webhook)

    async def send_test(
        self, db: AsyncSession, user_id: str, webhook_id: str, event: WebhookEvent
    ) -> DeliveryResult:
        """Deliver a sample event synchronously, through the normal logging path."""
        webhook = await self._repo.get_for_user(db, webhook_id, user_id)
        if webhook is None:
            raise WebhookNotFoundError(webhook_id)
        if not webhook.is_active:
            raise WebhookDisabledError(webhook_id)
        results = await self._dispatcher.deliver(
            db,
            [webhook],
            event,
            {"test": True, "webhook_id": webhook.id, "sent_at": utc_now().isoformat()},
        )
        return results[0]
