"""Admin read models and fraud_alerts persistence.

Heuristic queries do their own windowing and dedup (NOT EXISTS against
fraud_alerts), so every row they return is a new alert candidate.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.domain.models import AlertDraft, FraudAlert
from src.hb_common.enums import FraudAlertStatus

_ALERT_COLUMNS = """
    id, user_id, type, severity, status, description, ip_address, metadata,
    review_note, reviewed_by_id, created_at, resolved_at
"""

# ---------------------------------------------------------------------------
# SQL: heuristics
# ---------------------------------------------------------------------------

_VELOCITY_SQL = text("""
    SELECT t.user_id, COUNT(*) AS tx_count, COALESCE(SUM(ABS(t.amount)), 0) AS total_amount
    FROM transactions t
    WHERE t.created_at >= :since
      AND NOT EXISTS (
          SELECT 1 FROM fraud_alerts a
          WHERE a.user_id = t.user_id AND a.type = 'VELOCITY' AND a.created_at >= :dedup_since
      )
    GROUP BY t.user_id
    HAVING COUNT(*) > :min_count
    ORDER BY t.user_id
""")

# Largest qualifying deposit per user, so one user yields one alert per scan
_LARGE_DEPOSITS_SQL = text("""
    SELECT DISTINCT ON (t.user_id) t.id, t.user_id, t.amount, t.payment_method
    FROM transactions t
    WHERE t.type = 'DEPOSIT'
      AND t.status = 'COMPLETED'
      AND t.amount >= :min_amount
      AND t.created_at >= :since
      AND NOT EXISTS (
          SELECT 1 FROM fraud_alerts a
          WHERE a.user_id = t.user_id
            AND a.type = 'SUSPICIOUS_PAYMENT'
            AND a.created_at >= :dedup_since
      )
    ORDER BY t.user_id, t.amount DESC
""")

_SHARED_IPS_SQL = text("""
    SELECT l.ip_address, ARRAY_AGG(DISTINCT CAST(l.user_id AS TEXT)) AS user_ids
    FROM login_history l
    WHERE l.created_at >= :since
      AND l.ip_address IS NOT NULL
      AND NOT EXISTS (
          SELECT 1 FROM fraud_alerts a
          WHERE a.type = 'MULTIPLE_ACCOUNTS'
            AND a.ip_address = l.ip_address
            AND a.created_at >= :dedup_since
      )
    GROUP BY l.ip_address
    HAVING COUNT(DISTINCT l.user_id) >= :min_users
    ORDER BY l.ip_address
""")

_DORMANT_DEPOSITORS_SQL = text("""
    SELECT u.id AS user_id, u.last_login_at
    FROM users u
    WHERE u.last_login_at < :dormant_since
      AND EXISTS (
          SELECT 1 FROM transactions t
          WHERE t.user_id = u.id
            AND t.type = 'DEPOSIT'
            AND t.status = 'COMPLETED'
            AND t.amount >= :min_amount
            AND t.created_at >= :since
      )
      AND NOT EXISTS (
          SELECT 1 FROM fraud_alerts a
          WHERE a.user_id = u.id AND a.type = 'UNUSUAL_ACTIVITY' AND a.created_at >= :dedup_since
      )
    ORDER BY u.id
""")

# ---------------------------------------------------------------------------
# SQL: fraud_alerts
# ---------------------------------------------------------------------------

_INSERT_ALERT_SQL = text(f"""
    INSERT INTO fraud_alerts (user_id, type, severity, description, ip_address, metadata)
    VALUES (:user_id, :type, :severity, :description, :ip_address, CAST(:metadata AS JSONB))
    RETURNING {_ALERT_COLUMNS}
""")

_GET_ALERT_SQL = text(f"SELECT {_ALERT_COLUMNS} FROM fraud_alerts WHERE id = :id")

_LIST_ALERTS_SQL = text(f"""
    SELECT {_ALERT_COLUMNS}
    FROM fraud_alerts
    WHERE (CAST(:status AS VARCHAR) IS NULL OR status = CAST(:status AS VARCHAR))
      AND (CAST(:severity AS VARCHAR) IS NULL OR severity = CAST(:severity AS VARCHAR))
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
    ORDER BY id DESC
    LIMIT :limit
""")

_ALERT_COUNTS_SQL = text("""
    SELECT status, severity, COUNT(*) AS cnt
    FROM fraud_alerts
    GROUP BY status, severity
""")

_UPDATE_ALERT_SQL = text(f"""
    UPDATE fraud_alerts
    SET status = :status,
        review_note = :review_note,
        reviewed_by_id = :reviewed_by_id,
        resolved_at = CASE WHEN CAST(:status AS VARCHAR) = 'OPEN' THEN NULL ELSE NOW() END
    WHERE id = :id
    RETURNING {_ALERT_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: refunds
# ---------------------------------------------------------------------------

_LOCK_TX_SQL = text("""
    SELECT id, user_id, type, amount, status
    FROM transactions
    WHERE id = :id
    FOR UPDATE
""")

_SUM_REFUNDED_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)
    FROM transactions
    WHERE type = 'REFUND'
      AND status = 'COMPLETED'
      AND reference_type = 'TRANSACTION'
      AND reference_id = :reference_id
""")

_REFUND_STATS_SQL = text("""
    SELECT COUNT(*) AS total_count,
           COALESCE(SUM(amount), 0) AS total_amount,
           COALESCE(SUM(amount) FILTER (WHERE created_at >= :month_start), 0) AS month_amount
    FROM transactions
    WHERE type = 'REFUND' AND status = 'COMPLETED'
""")


def _row_to_alert(row: object) -> FraudAlert:
    metadata = row.metadata  # type: ignore[attr-defined]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    reviewed_by = row.reviewed_by_id  # type: ignore[attr-defined]
    return FraudAlert(
        id=row.id,  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        type=row.type,  # type: ignore[attr-defined]
        severity=row.severity,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        ip_address=row.ip_address,  # type: ignore[attr-defined]
        metadata=metadata or {},
        review_note=row.review_note,  # type: ignore[attr-defined]
        reviewed_by_id=str(reviewed_by) if reviewed_by else None,
        created_at=row.created_at,  # type: ignore[attr-defined]
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
    )


class FraudAlertRepository:
    async def velocity_candidates(
        self, db: AsyncSession, since: datetime, dedup_since: datetime, min_count: int
    ) -> list[Any]:
        result = await db.execute(
            _VELOCITY_SQL,
            {"since": since, "dedup_since": dedup_since, "min_count": min_count},
        )
        return list(result.fetchall())

    async def large_deposit_candidates(
        self, db: AsyncSession, since: datetime, dedup_since: datetime, min_amount: int
    ) -> list[Any]:
        result = await db.execute(
            _LARGE_DEPOSITS_SQL,
            {"since": since, "dedup_since": dedup_since, "min_amount": min_amount},
        )
        return list(result.fetchall())

    async def shared_ip_candidates(
        self, db: AsyncSession, since: datetime, dedup_since: datetime, min_users: int
    ) -> list[Any]:
        result = await db.execute(
            _SHARED_IPS_SQL,
            {"since": since, "dedup_since": dedup_since, "min_users": min_users},
        )
        return list(result.fetchall())

    async def dormant_depositor_candidates(
        self,
        db: AsyncSession,
        dormant_since: datetime,
        since: datetime,
        dedup_since: datetime,
        min_amount: int,
    ) -> list[Any]:
        result = await db.execute(
            _DORMANT_DEPOSITORS_SQL,
            {
                "dormant_since": dormant_since,
                "since": since,
                "dedup_since": dedup_since,
                "min_amount": min_amount,
            },
        )
        return list(result.fetchall())

    async def create(self, db: AsyncSession, draft: AlertDraft) -> FraudAlert:
        result = await db.execute(
            _INSERT_ALERT_SQL,
            {
                "user_id": draft.user_id,
                "type": draft.type,
                "severity": draft.severity,
                "description": draft.description,
                "ip_address": draft.ip_address,
                "metadata": json.dumps(draft.metadata, default=str),
            },
        )
        return _row_to_alert(result.fetchone())

    async def get(self, db: AsyncSession, alert_id: int) -> FraudAlert | None:
        result = await db.execute(_GET_ALERT_SQL, {"id": alert_id})
        row = result.fetchone()
        return _row_to_alert(row) if row else None

    async def list_alerts(
        self,
        db: AsyncSession,
        status: str | None,
        severity: str | None,
        cursor_id: int | None,
        limit: int,
    ) -> list[FraudAlert]:
        result = await db.execute(
            _LIST_ALERTS_SQL,
            {"status": status, "severity": severity, "cursor_id": cursor_id, "limit": limit},
        )
        return [_row_to_alert(row) for row in result.fetchall()]

    async def counts(self, db: AsyncSession) -> dict[str, dict[str, int]]:
        """Alert totals keyed ``{"by_status": {...}, "by_severity": {...}}``."""
        result = await db.execute(_ALERT_COUNTS_SQL)
        by_status: dict[str, int] = {s.value: 0 for s in FraudAlertStatus}
        by_severity: dict[str, int] = {}
        for row in result.fetchall():
            by_status[row.status] = by_status.get(row.status, 0) + row.cnt
            by_severity[row.severity] = by_severity.get(row.severity, 0) + row.cnt
        return {"by_status": by_status, "by_severity": by_severity}

    async def update_status(
        self,
        db: AsyncSession,
        alert_id: int,
        status: str,
        review_note: str | None,
        reviewed_by_id: str,
    ) -> FraudAlert | None:
        result = await db.execute(
            _UPDATE_ALERT_SQL,
            {
                "id": alert_id,
                "status": status,
                "review_note": review_note,
                "reviewed_by_id": reviewed_by_id,
            },
        )
        row = result.fetchone()
        return _row_to_alert(row) if row else None


class RefundRepository:
    async def lock_transaction(self, db: AsyncSession, transaction_id: int) -> Any | None:
        """Row-lock the refund target so concurrent refunds see each other's totals."""
        result = await db.execute(_LOCK_TX_SQL, {"id": transaction_id})
        return result.fetchone()

    async def sum_refunded(self, db: AsyncSession, transaction_id: int) -> int:
        result = await db.execute(_SUM_REFUNDED_SQL, {"reference_id": str(transaction_id)})
        return int(result.scalar_one())

    async def stats(self, db: AsyncSession, month_start: datetime) -> dict[str, int]:
        result = await db.execute(_REFUND_STATS_SQL, {"month_start": month_start})
        row = result.fetchone()
        return {
            "total_count": int(row.total_count),  # type: ignore[union-attr]
            "total_amount": int(row.total_amount),  # type: ignore[union-attr]
            "month_amount": int(row.month_amount),  # type: ignore[union-attr]
        }
