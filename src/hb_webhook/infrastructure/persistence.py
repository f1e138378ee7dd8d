"""WebhookRepository — subscriptions and the append-only delivery log."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class Webhook:
    id: str
    user_id: str
    name: str
    url: str
    events: list[str] = field(default_factory=list)
    secret: str = ""
    is_active: bool = True
    fail_count: int = 0
    last_triggered_at: datetime | None = None
    created_at: datetime | None = None


_WEBHOOK_COLUMNS = """
    id, user_id, name, url, events, secret, is_active, fail_count,
    last_triggered_at, created_at
"""

_LIST_ACTIVE_FOR_EVENT_SQL = text(f"""
    SELECT {_WEBHOOK_COLUMNS}
    FROM webhooks
    WHERE user_id = :user_id AND is_active = TRUE AND :event = ANY(events)
""")

_LIST_FOR_USER_SQL = text(f"""
    SELECT {_WEBHOOK_COLUMNS} FROM webhooks
    WHERE user_id = :user_id
    ORDER BY created_at
""")

_GET_FOR_USER_SQL = text(f"""
    SELECT {_WEBHOOK_COLUMNS} FROM webhooks WHERE id = :id AND user_id = :user_id
""")

_COUNT_FOR_USER_SQL = text("SELECT COUNT(*) FROM webhooks WHERE user_id = :user_id")

_INSERT_SQL = text(f"""
    INSERT INTO webhooks (user_id, name, url, events, secret)
    VALUES (:user_id, :name, :url, :events, :secret)
    RETURNING {_WEBHOOK_COLUMNS}
""")

# Re-enabling a subscription gives it a fresh failure budget
_UPDATE_SQL = text(f"""
    UPDATE webhooks
    SET name = :name,
        url = :url,
        events = :events,
        fail_count = CASE WHEN :is_active AND NOT is_active THEN 0 ELSE fail_count END,
        is_active = :is_active
    WHERE id = :id AND user_id = :user_id
    RETURNING {_WEBHOOK_COLUMNS}
""")

_DELETE_SQL = text("DELETE FROM webhooks WHERE id = :id AND user_id = :user_id RETURNING id")

_SET_SECRET_SQL = text(f"""
    UPDATE webhooks SET secret = :secret
    WHERE id = :id AND user_id = :user_id
    RETURNING {_WEBHOOK_COLUMNS}
""")

_RECORD_SUCCESS_SQL = text("""
    UPDATE webhooks
    SET fail_count = 0, last_triggered_at = NOW()
    WHERE id = :id
    RETURNING fail_count, is_active
""")

_RECORD_FAILURE_SQL = text("""
    UPDATE webhooks
    SET fail_count = fail_count + 1,
        is_active = is_active AND (fail_count + 1) < :max_failures,
        last_triggered_at = NOW()
    WHERE id = :id
    RETURNING fail_count, is_active
""")

_INSERT_LOG_SQL = text("""
    INSERT INTO webhook_logs (webhook_id, event, payload, response_code, response_body, success)
    VALUES (:webhook_id, :event, CAST(:payload AS JSONB), :response_code, :response_body, :success)
""")

_RECENT_LOGS_SQL = text("""
    SELECT id, event, response_code, response_body, success, executed_at
    FROM webhook_logs
    WHERE webhook_id = :webhook_id
    ORDER BY executed_at DESC
    LIMIT :limit
""")


def _row_to_webhook(row: object) -> Webhook:
    return Webhook(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        url=row.url,  # type: ignore[attr-defined]
        events=list(row.events or []),  # type: ignore[attr-defined]
        secret=row.secret,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        fail_count=row.fail_count,  # type: ignore[attr-defined]
        last_triggered_at=row.last_triggered_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class WebhookRepository:
    async def list_active_for_event(
        self, db: AsyncSession, user_id: str, event: str
    ) -> list[Webhook]:
        result = await db.execute(
            _LIST_ACTIVE_FOR_EVENT_SQL, {"user_id": user_id, "event": event}
        )
        return [_row_to_webhook(r) for r in result.fetchall()]

    async def list_for_user(self, db: AsyncSession, user_id: str) -> list[Webhook]:
        result = await db.execute(_LIST_FOR_USER_SQL, {"user_id": user_id})
        return [_row_to_webhook(r) for r in result.fetchall()]

    async def get_for_user(
        self, db: AsyncSession, webhook_id: str, user_id: str
    ) -> Webhook | None:
        result = await db.execute(_GET_FOR_USER_SQL, {"id": webhook_id, "user_id": user_id})
        row = result.fetchone()
        return _row_to_webhook(row) if row else None

    async def count_for_user(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(_COUNT_FOR_USER_SQL, {"user_id": user_id})
        return int(result.scalar_one())

    async def create(
        self,
        db: AsyncSession,
        user_id: str,
        name: str,
        url: str,
        events: list[str],
        secret: str,
    ) -> Webhook:
        result = await db.execute(
            _INSERT_SQL,
            {"user_id": user_id, "name": name, "url": url, "events": events, "secret": secret},
        )
        return _row_to_webhook(result.fetchone())

    async def update(self, db: AsyncSession, webhook: Webhook) -> Webhook | None:
        result = await db.execute(
            _UPDATE_SQL,
            {
                "id": webhook.id,
                "user_id": webhook.user_id,
                "name": webhook.name,
                "url": webhook.url,
                "events": webhook.events,
                "is_active": webhook.is_active,
            },
        )
        row = result.fetchone()
        return _row_to_webhook(row) if row else None

    async def delete(self, db: AsyncSession, webhook_id: str, user_id: str) -> bool:
        result = await db.execute(_DELETE_SQL, {"id": webhook_id, "user_id": user_id})
        return result.fetchone() is not None

    async def set_secret(
        self, db: AsyncSession, webhook_id: str, user_id: str, secret: str
    ) -> Webhook | None:
        result = await db.execute(
            _SET_SECRET_SQL, {"id": webhook_id, "user_id": user_id, "secret": secret}
        )
        row = result.fetchone()
        return _row_to_webhook(row) if row else None

    async def record_attempt(
        self,
        db: AsyncSession,
        webhook_id: str,
        event: str,
        payload: dict[str, Any],
        response_code: int | None,
        response_body: str | None,
        success: bool,
        max_failures: int,
    ) -> tuple[int, bool]:
        """Write the delivery log row and update the failure counter.

        Returns (fail_count, is_active) after the update.
        """
        await db.execute(
            _INSERT_LOG_SQL,
            {
                "webhook_id": webhook_id,
                "event": event,
                "payload": json.dumps(payload, default=str),
                "response_code": response_code,
                "response_body": response_body,
                "success": success,
            },
        )
        if success:
            result = await db.execute(_RECORD_SUCCESS_SQL, {"id": webhook_id})
        else:
            result = await db.execute(
                _RECORD_FAILURE_SQL, {"id": webhook_id, "max_failures": max_failures}
            )
        row = result.fetchone()
        if row is None:
            return 0, False
        return row.fail_count, row.is_active

    async def recent_logs(
        self, db: AsyncSession, webhook_id: str, limit: int = 5
    ) -> list[dict[str, Any]]:
        result = await db.execute(_RECENT_LOGS_SQL, {"webhook_id": webhook_id, "limit": limit})
        return [
            {
                "id": str(r.id),
                "event": r.event,
                "response_code": r.response_code,
                "response_body": r.response_body,
                "success": r.success,
                "executed_at": r.executed_at.isoformat(),
            }
            for r in result.fetchall()
        ]
