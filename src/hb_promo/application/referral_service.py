"""ReferralService — first-purchase referral bonus and referral-code management."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.cents import cents_to_display
from src.hb_common.enums import NotificationType, ReferenceType, TransactionType
from src.hb_common.errors import InternalError, ReferralCodeError, UserNotFoundError
from src.hb_ledger.domain.models import Transaction
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_notification.infrastructure.persistence import NotificationRepository
from src.hb_promo.domain.codes import generate_referral_code, normalize_code
from src.hb_promo.domain.rules import referral_bonus
from src.hb_promo.infrastructure.persistence import ReferralRepository

logger = logging.getLogger(__name__)

_MAX_CODE_ATTEMPTS = 10


class ReferralService:
    def __init__(
        self,
        repo: ReferralRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self._repo = repo or ReferralRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._notifications = notifications or NotificationRepository()

    async def process_referral_bonus(
        self, db: AsyncSession, referred_user_id: str, order_amount: int
    ) -> Transaction | None:
        """Pay the referrer once, on the referred user's first completed purchase.

        Runs inside the caller's transaction (after the PURCHASE row is written)
        and does not commit. Returns the REFERRAL transaction, or None when no
        bonus is due.
        """
        referrer_id = await self._repo.get_referrer_id(db, referred_user_id)
        if referrer_id is None:
            return None

        purchases = await self._ledger.count_completed(
            db, referred_user_id, TransactionType.PURCHASE
        )
        if purchases != 1:
            return None

        existing = await self._ledger.find_by_reference(
            db, TransactionType.REFERRAL, ReferenceType.REFERRED_USER, referred_user_id
        )
        if existing is not None:
            logger.info(
                "Referral bonus for referred user=%s already paid (tx=%d)",
                referred_user_id, existing.id,
            )
            return None

        bonus = referral_bonus(order_amount)
        try:
            # Savepoint: a unique-index race only drops the bonus, not the purchase
            async with db.begin_nested():
                tx = await self._ledger.append_transaction(
                    db,
                    referrer_id,
                    TransactionType.REFERRAL,
                    bonus,
                    "Referral bonus",
                    reference_type=ReferenceType.REFERRED_USER,
                    reference_id=referred_user_id,
                    metadata={"order_amount": order_amount},
                )
                await self._repo.credit_referral_balance(db, referrer_id, bonus)
                await self._notifications.create(
                    db,
                    referrer_id,
                    NotificationType.PAYMENT,
                    "Referral bonus",
                    f"You received {cents_to_display(bonus)} for a referred user's first purchase",
                )
        except IntegrityError:
            logger.warning("Concurrent referral bonus for referred user=%s skipped", referred_user_id)
            return None

        logger.info(
            "Referral bonus %d paid to user=%s for referred user=%s",
            bonus, referrer_id, referred_user_id,
        )
        return tx

    async def apply_referral_code(
        self, db: AsyncSession, user_id: str, code: str
    ) -> dict[str, Any]:
        try:
            referrer_id = await self._repo.find_user_by_code(db, normalize_code(code))
            if referrer_id is None:
                raise ReferralCodeError("Referral code not found")
            if referrer_id == user_id:
                raise ReferralCodeError("You cannot use your own referral code")
            if not await self._repo.set_referrer(db, user_id, referrer_id):
                raise ReferralCodeError("A referral code has already been applied")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return {"referrer_id": referrer_id}

    async def get_referral_info(self, db: AsyncSession, user_id: str) -> dict[str, Any]:
        info = await self._repo.get_info(db, user_id)
        if info is None:
            raise UserNotFoundError(user_id)
        return info

    async def regenerate_referral_code(self, db: AsyncSession, user_id: str) -> dict[str, str]:
        try:
            for _ in range(_MAX_CODE_ATTEMPTS):
                code = generate_referral_code()
                if await self._repo.set_code(db, user_id, code):
                    break
            else:
                raise InternalError("Could not generate a unique referral code")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return {"referral_code": code}
