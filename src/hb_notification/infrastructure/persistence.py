"""NotificationRepository — in-app notifications written alongside ledger events.

Writes participate in the caller's DB transaction; the caller commits.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class Notification:
    id: int
    user_id: str
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime | None = None


_INSERT_SQL = text("""
    INSERT INTO notifications (user_id, type, title, message)
    VALUES (:user_id, :type, :title, :message)
    RETURNING id, user_id, type, title, message, is_read, created_at
""")

_LIST_SQL = text("""
    SELECT id, user_id, type, title, message, is_read, created_at
    FROM notifications
    WHERE user_id = :user_id
      AND (:unread_only = FALSE OR is_read = FALSE)
    ORDER BY id DESC
    LIMIT :limit
""")

_MARK_READ_SQL = text("""
    UPDATE notifications
    SET is_read = TRUE
    WHERE user_id = :user_id AND (CAST(:id AS BIGINT) IS NULL OR id = CAST(:id AS BIGINT))
      AND is_read = FALSE
""")


def _row_to_notification(row: object) -> Notification:
    return Notification(
        id=row.id,  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        type=row.type,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        message=row.message,  # type: ignore[attr-defined]
        is_read=row.is_read,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class NotificationRepository:
    async def create(
        self, db: AsyncSession, user_id: str, type: str, title: str, message: str
    ) -> Notification:
        result = await db.execute(
            _INSERT_SQL,
            {"user_id": user_id, "type": type, "title": title, "message": message},
        )
        return _row_to_notification(result.fetchone())

    async def list_for_user(
        self, db: AsyncSession, user_id: str, unread_only: bool, limit: int
    ) -> list[Notification]:
        result = await db.execute(
            _LIST_SQL, {"user_id": user_id, "unread_only": unread_only, "limit": limit}
        )
        return [_row_to_notification(r) for r in result.fetchall()]

    async def mark_read(
        self, db: AsyncSession, user_id: str, notification_id: int | None
    ) -> int:
        """Mark one (or, with None, all) notifications read. Returns rows changed."""
        result = await db.execute(
            _MARK_READ_SQL, {"user_id": user_id, "id": notification_id}
        )
        return result.rowcount  # type: ignore[attr-defined]
