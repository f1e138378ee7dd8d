"""Notification read/acknowledge operations."""

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_notification.infrastructure.persistence import NotificationRepository


class NotificationItem(BaseModel):
    id: int
    type: str
    title: str
    message: str
    is_read: bool
    created_at: str


class NotificationService:
    def __init__(self, repo: NotificationRepository | None = None) -> None:
        self._repo = repo or NotificationRepository()

    async def list_for_user(
        self, db: AsyncSession, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> list[NotificationItem]:
        rows = await self._repo.list_for_user(db, user_id, unread_only, limit)
        return [
            NotificationItem(
                id=n.id,
                type=n.type,
                title=n.title,
                message=n.message,
                is_read=n.is_read,
                created_at=n.created_at.isoformat() if n.created_at else "",
            )
            for n in rows
        ]

    async def mark_read(
        self, db: AsyncSession, user_id: str, notification_id: int | None = None
    ) -> int:
        try:
            changed = await self._repo.mark_read(db, user_id, notification_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return changed
