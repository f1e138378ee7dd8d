"""SpendingLimitRepository — one optional row per user."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_limits.domain.guard import SpendingLimit

_GET_LIMIT_SQL = text("""
    SELECT user_id, daily_limit, monthly_limit, alert_at, is_enabled
    FROM spending_limits WHERE user_id = :user_id
""")

_UPSERT_LIMIT_SQL = text("""
    INSERT INTO spending_limits (user_id, daily_limit, monthly_limit, alert_at, is_enabled)
    VALUES (:user_id, :daily_limit, :monthly_limit, :alert_at, :is_enabled)
    ON CONFLICT (user_id) DO UPDATE
        SET daily_limit = EXCLUDED.daily_limit,
            monthly_limit = EXCLUDED.monthly_limit,
            alert_at = EXCLUDED.alert_at,
            is_enabled = EXCLUDED.is_enabled,
            updated_at = NOW()
    RETURNING user_id, daily_limit, monthly_limit, alert_at, is_enabled
""")


def _row_to_limit(row: object) -> SpendingLimit:
    return SpendingLimit(
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        daily_limit=row.daily_limit,  # type: ignore[attr-defined]
        monthly_limit=row.monthly_limit,  # type: ignore[attr-defined]
        alert_at=row.alert_at,  # type: ignore[attr-defined]
        is_enabled=row.is_enabled,  # type: ignore[attr-defined]
    )


class SpendingLimitRepository:
    async def get(self, db: AsyncSession, user_id: str) -> SpendingLimit | None:
        result = await db.execute(_GET_LIMIT_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_limit(row) if row else None

    async def upsert(self, db: AsyncSession, limit: SpendingLimit) -> SpendingLimit:
        result = await db.execute(
            _UPSERT_LIMIT_SQL,
            {
                "user_id": limit.user_id,
                "daily_limit": limit.daily_limit,
                "monthly_limit": limit.monthly_limit,
                "alert_at": limit.alert_at,
                "is_enabled": limit.is_enabled,
            },
        )
        return _row_to_limit(result.fetchone())
