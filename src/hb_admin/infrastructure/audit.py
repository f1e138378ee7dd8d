"""Admin audit trail (admin_logs).

Every admin mutation and every fraud scan writes one row, inside the same DB
transaction as the action it describes.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

_INSERT_LOG_SQL = text("""
    INSERT INTO admin_logs (admin_id, action, target, details)
    VALUES (:admin_id, :action, :target, CAST(:details AS JSONB))
    RETURNING id
""")

_LIST_LOGS_SQL = text("""
    SELECT id, admin_id, action, target, details, created_at
    FROM admin_logs
    WHERE (CAST(:action AS VARCHAR) IS NULL OR action = CAST(:action AS VARCHAR))
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
    ORDER BY id DESC
    LIMIT :limit
""")


async def record_admin_action(
    db: AsyncSession,
    admin_id: str | None,
    action: str,
    target: str | None = None,
    details: dict[str, Any] | None = None,
) -> int:
    """Insert an admin_logs row; ``admin_id`` is None for cron-triggered jobs."""
    result = await db.execute(
        _INSERT_LOG_SQL,
        {
            "admin_id": admin_id,
            "action": action,
            "target": target,
            "details": json.dumps(details or {}, default=str),
        },
    )
    return int(result.scalar_one())


async def list_admin_actions(
    db: AsyncSession, action: str | None, cursor_id: int | None, limit: int
) -> list[dict[str, Any]]:
    result = await db.execute(
        _LIST_LOGS_SQL, {"action": action, "cursor_id": cursor_id, "limit": limit}
    )
    return [
        {
            "id": row.id,
            "admin_id": str(row.admin_id) if row.admin_id else None,
            "action": row.action,
            "target": row.target,
            "details": row.details if isinstance(row.details, dict) else json.loads(row.details or "{}"),
            "created_at": row.created_at.isoformat(),
        }
        for row in result.fetchall()
    ]
