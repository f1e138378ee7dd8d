"""SpendingLimitService — per-user daily/monthly purchase caps.

``check_and_consume`` is called by the checkout inside its transaction, after
the user row is locked and right before the PURCHASE row is appended.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.datetime_utils import start_of_day, start_of_month, utc_now
from src.hb_common.enums import TransactionType
from src.hb_common.errors import SpendingLimitExceededError
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_limits.application.schemas import LimitsResponse, UpdateLimitsRequest
from src.hb_limits.domain.guard import SpendingLimit, evaluate_spend, spend_stats
from src.hb_limits.infrastructure.persistence import SpendingLimitRepository

logger = logging.getLogger(__name__)


class SpendingLimitService:
    def __init__(
        self,
        repo: SpendingLimitRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
    ) -> None:
        self._repo = repo or SpendingLimitRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()

    async def _spent(self, db: AsyncSession, user_id: str) -> tuple[int, int]:
        now = utc_now()
        today = await self._ledger.sum_completed(
            db, user_id, TransactionType.PURCHASE, start_of_day(now)
        )
        month = await self._ledger.sum_completed(
            db, user_id, TransactionType.PURCHASE, start_of_month(now)
        )
        return today, month

    async def check_and_consume(self, db: AsyncSession, user_id: str, amount: int) -> None:
        """Raise SpendingLimitExceededError if ``amount`` would break a cap."""
        limit = await self._repo.get(db, user_id)
        if limit is None or not limit.is_enabled:
            return
        today, month = await self._spent(db, user_id)
        breach = evaluate_spend(limit, today, month, amount)
        if breach is not None:
            logger.info(
                "Spending limit hit user=%s period=%s limit=%d spent=%d amount=%d",
                user_id, breach.period, breach.limit, breach.spent, amount,
            )
            raise SpendingLimitExceededError(breach.period, breach.limit, breach.spent)

    async def get_limits(self, db: AsyncSession, user_id: str) -> LimitsResponse:
        limit = await self._repo.get(db, user_id)
        today, month = await self._spent(db, user_id)
        return LimitsResponse.build(limit, spend_stats(limit, today, month))

    async def update_limits(
        self, db: AsyncSession, user_id: str, body: UpdateLimitsRequest
    ) -> LimitsResponse:
        try:
            limit = await self._repo.upsert(
                db,
                SpendingLimit(
                    user_id=user_id,
                    daily_limit=body.daily_limit or None,
                    monthly_limit=body.monthly_limit or None,
                    alert_at=body.alert_at,
                    is_enabled=body.is_enabled,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        today, month = await self._spent(db, user_id)
        return LimitsResponse.build(limit, spend_stats(limit, today, month))
