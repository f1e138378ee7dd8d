"""DiscountService — volume-discount tiers and per-user discount snapshots.

The snapshot in user_discounts is derived from COMPLETED DEPOSIT totals. It is
computed lazily on first read and recomputed explicitly after every completed
deposit (PaymentService calls ``refresh_user_discount``).
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.infrastructure.audit import record_admin_action
from src.hb_common.enums import TransactionType
from src.hb_common.errors import DiscountTierNotFoundError
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_promo.application.schemas import (
    DiscountTierItem,
    SaveTierRequest,
    UserDiscountResponse,
)
from src.hb_promo.domain.models import UserDiscount
from src.hb_promo.domain.rules import next_tier, pick_tier
from src.hb_promo.infrastructure.persistence import DiscountRepository

logger = logging.getLogger(__name__)


class DiscountService:
    def __init__(
        self,
        repo: DiscountRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
    ) -> None:
        self._repo = repo or DiscountRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()

    async def refresh_user_discount(self, db: AsyncSession, user_id: str) -> UserDiscount:
        """Recompute and upsert the snapshot; caller owns the transaction."""
        total_spent = await self._ledger.sum_completed(db, user_id, TransactionType.DEPOSIT)
        tiers = await self._repo.list_tiers(db, active_only=True)
        tier = pick_tier(tiers, total_spent)
        snapshot = await self._repo.upsert_user_discount(
            db,
            user_id,
            total_spent,
            tier.discount_percent if tier else 0,
            tier.name if tier else None,
        )
        logger.debug(
            "Discount snapshot user=%s spent=%d percent=%d",
            user_id, total_spent, snapshot.discount_percent,
        )
        return snapshot

    async def current_snapshot(self, db: AsyncSession, user_id: str) -> UserDiscount:
        """Cached snapshot, computed on first access. Does not commit."""
        snapshot = await self._repo.get_user_discount(db, user_id)
        if snapshot is None:
            snapshot = await self.refresh_user_discount(db, user_id)
        return snapshot

    async def get_user_discount(self, db: AsyncSession, user_id: str) -> UserDiscountResponse:
        try:
            snapshot = await self.current_snapshot(db, user_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        tiers = await self._repo.list_tiers(db, active_only=True)
        upcoming = next_tier(tiers, snapshot.total_spent)
        return UserDiscountResponse(
            total_spent_cents=snapshot.total_spent,
            discount_percent=snapshot.discount_percent,
            discount_tier=snapshot.discount_tier,
            next_tier=DiscountTierItem.from_domain(upcoming) if upcoming else None,
            amount_to_next_tier_cents=(
                upcoming.min_amount - snapshot.total_spent if upcoming else None
            ),
            tiers=[DiscountTierItem.from_domain(t) for t in tiers],
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def list_tiers(self, db: AsyncSession) -> list[DiscountTierItem]:
        tiers = await self._repo.list_tiers(db, active_only=False)
        return [DiscountTierItem.from_domain(t) for t in tiers]

    async def save_tier(
        self,
        db: AsyncSession,
        admin_id: str,
        body: SaveTierRequest,
        tier_id: str | None = None,
    ) -> DiscountTierItem:
        try:
            tier = await self._repo.save_tier(
                db, tier_id, body.name, body.min_amount, body.discount_percent, body.is_active
            )
            if tier is None:
                raise DiscountTierNotFoundError(tier_id or "")
            await record_admin_action(
                db, admin_id, "DISCOUNT_TIER_SAVED", f"discount:{tier.id}",
                body.model_dump(),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return DiscountTierItem.from_domain(tier)

    async def delete_tier(self, db: AsyncSession, admin_id: str, tier_id: str) -> None:
        try:
            if not await self._repo.delete_tier(db, tier_id):
                raise DiscountTierNotFoundError(tier_id)
            await record_admin_action(db, admin_id, "DISCOUNT_TIER_DELETED", f"discount:{tier_id}")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
