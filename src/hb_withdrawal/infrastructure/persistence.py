"""WithdrawalRepository — withdrawal_requests table.

Status changes are conditional UPDATEs on the expected current status; a
result of 0 rows means another admin action got there first.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_withdrawal.domain.models import WithdrawalRequest

_COLUMNS = "id, user_id, amount, method, details, status, admin_note, processed_at, created_at"

_INSERT_SQL = text(f"""
    INSERT INTO withdrawal_requests (user_id, amount, method, details)
    VALUES (:user_id, :amount, :method, CAST(:details AS JSONB))
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM withdrawal_requests WHERE id = :id")

_LIST_FOR_USER_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM withdrawal_requests
    WHERE user_id = :user_id
    ORDER BY created_at DESC
    LIMIT :limit
""")

_LIST_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM withdrawal_requests
    WHERE (CAST(:status AS VARCHAR) IS NULL OR status = CAST(:status AS VARCHAR))
    ORDER BY created_at DESC
    LIMIT :limit
""")

_ACTIVE_SUMMARY_SQL = text("""
    SELECT COUNT(*) AS cnt, COALESCE(SUM(amount), 0) AS total
    FROM withdrawal_requests
    WHERE user_id = :user_id AND status IN ('PENDING', 'PROCESSING')
""")

_TRANSITION_SQL = text(f"""
    UPDATE withdrawal_requests
    SET status = :target,
        admin_note = COALESCE(CAST(:admin_note AS TEXT), admin_note),
        processed_at = CASE
            WHEN CAST(:target AS VARCHAR) IN ('COMPLETED', 'REJECTED') THEN NOW()
            ELSE processed_at
        END
    WHERE id = :id AND status = :current
    RETURNING {_COLUMNS}
""")

_DELETE_PENDING_SQL = text("""
    DELETE FROM withdrawal_requests
    WHERE id = :id AND user_id = :user_id AND status = 'PENDING'
""")


def _row_to_request(row: object) -> WithdrawalRequest:
    details = row.details  # type: ignore[attr-defined]
    if isinstance(details, str):
        details = json.loads(details)
    return WithdrawalRequest(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        method=row.method,  # type: ignore[attr-defined]
        details=details or {},
        status=row.status,  # type: ignore[attr-defined]
        admin_note=row.admin_note,  # type: ignore[attr-defined]
        processed_at=row.processed_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class WithdrawalRepository:
    async def create(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        method: str,
        details: dict[str, Any],
    ) -> WithdrawalRequest:
        result = await db.execute(
            _INSERT_SQL,
            {
                "user_id": user_id,
                "amount": amount,
                "method": method,
                "details": json.dumps(details),
            },
        )
        return _row_to_request(result.fetchone())

    async def get(self, db: AsyncSession, request_id: str) -> WithdrawalRequest | None:
        result = await db.execute(_GET_SQL, {"id": request_id})
        row = result.fetchone()
        return _row_to_request(row) if row else None

    async def list_for_user(
        self, db: AsyncSession, user_id: str, limit: int = 50
    ) -> list[WithdrawalRequest]:
        result = await db.execute(_LIST_FOR_USER_SQL, {"user_id": user_id, "limit": limit})
        return [_row_to_request(row) for row in result.fetchall()]

    async def list_all(
        self, db: AsyncSession, status: str | None, limit: int
    ) -> list[WithdrawalRequest]:
        result = await db.execute(_LIST_SQL, {"status": status, "limit": limit})
        return [_row_to_request(row) for row in result.fetchall()]

    async def active_summary(self, db: AsyncSession, user_id: str) -> tuple[int, int]:
        """(count, total amount) of PENDING + PROCESSING requests."""
        result = await db.execute(_ACTIVE_SUMMARY_SQL, {"user_id": user_id})
        row = result.fetchone()
        return int(row.cnt), int(row.total)  # type: ignore[union-attr]

    async def transition(
        self,
        db: AsyncSession,
        request_id: str,
        current: str,
        target: str,
        admin_note: str | None,
    ) -> WithdrawalRequest | None:
        result = await db.execute(
            _TRANSITION_SQL,
            {"id": request_id, "current": current, "target": target, "admin_note": admin_note},
        )
        row = result.fetchone()
        return _row_to_request(row) if row else None

    async def delete_pending(self, db: AsyncSession, user_id: str, request_id: str) -> bool:
        result = await db.execute(_DELETE_PENDING_SQL, {"id": request_id, "user_id": user_id})
        return result.rowcount == 1  # type: ignore[attr-defined]
