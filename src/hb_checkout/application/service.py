"""CheckoutService — the purchase path through every billing guard.

Order inside one DB transaction:
  lock user row -> spending limit -> funds check -> PURCHASE row
  -> promocode redemption -> referral bonus for the referrer
After commit a BALANCE_LOW webhook is scheduled when the remaining balance
falls below the configured threshold.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.hb_checkout.application.schemas import PurchaseResponse, QuoteResponse
from src.hb_checkout.domain.pricing import PriceBreakdown, compute_price
from src.hb_common.enums import PromocodeType, ReferenceType, TransactionType, WebhookEvent
from src.hb_common.errors import (
    InsufficientBalanceError,
    PromocodeInvalidError,
    UserNotFoundError,
)
from src.hb_ledger.application.schemas import TransactionItem
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_limits.application.service import SpendingLimitService
from src.hb_promo.application.discount_service import DiscountService
from src.hb_promo.application.promocode_service import PromocodeService
from src.hb_promo.application.referral_service import ReferralService
from src.hb_promo.domain.models import Promocode
from src.hb_webhook.application.dispatcher import WebhookDispatcher, dispatcher

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        ledger: LedgerRepositoryProtocol | None = None,
        promocodes: PromocodeService | None = None,
        discounts: DiscountService | None = None,
        limits: SpendingLimitService | None = None,
        referrals: ReferralService | None = None,
        webhooks: WebhookDispatcher | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._promocodes = promocodes or PromocodeService(ledger=self._ledger)
        self._discounts = discounts or DiscountService(ledger=self._ledger)
        self._limits = limits or SpendingLimitService(ledger=self._ledger)
        self._referrals = referrals or ReferralService(ledger=self._ledger)
        self._webhooks = webhooks or dispatcher

    async def _price(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        code: str | None,
        plan_type: str | None,
    ) -> tuple[PriceBreakdown, Promocode | None]:
        promocode = None
        promo_discount = 0
        if code:
            result = await self._promocodes.validate(db, code, user_id, amount, plan_type)
            if not result.valid or result.promocode is None:
                raise PromocodeInvalidError(result.error or "Promocode is invalid")
            if result.promocode.type == PromocodeType.BALANCE:
                raise PromocodeInvalidError("Balance promocodes are credited, not used at checkout")
            if result.promocode.plan_types and plan_type is None:
                raise PromocodeInvalidError("Choose a service type to use this promocode")
            promocode = result.promocode
            promo_discount = result.discount

        snapshot = await self._discounts.current_snapshot(db, user_id)
        return compute_price(amount, promo_discount, snapshot.discount_percent), promocode

    async def quote(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        promocode: str | None = None,
        plan_type: str | None = None,
    ) -> QuoteResponse:
        try:
            price, promo = await self._price(db, user_id, amount, promocode, plan_type)
            # current_snapshot may have computed and stored the snapshot
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return QuoteResponse.build(price, promo.code if promo else None)

    async def purchase(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        description: str,
        promocode: str | None = None,
        plan_type: str | None = None,
    ) -> PurchaseResponse:
        try:
            balance = await self._ledger.lock_balance(db, user_id)
            if balance is None:
                raise UserNotFoundError(user_id)

            price, promo = await self._price(db, user_id, amount, promocode, plan_type)
            total = price.total
            await self._limits.check_and_consume(db, user_id, total)
            if balance < total:
                raise InsufficientBalanceError(total, balance)

            tx = await self._ledger.append_transaction(
                db,
                user_id,
                TransactionType.PURCHASE,
                -total,
                description,
                reference_type=ReferenceType.PROMOCODE if promo else None,
                reference_id=promo.id if promo else None,
                metadata={
                    "base_amount": price.base_amount,
                    "promo_discount": price.promo_discount,
                    "promocode": promo.code if promo else None,
                    "volume_discount_percent": price.volume_percent,
                    "volume_discount": price.volume_discount,
                    "plan_type": plan_type,
                },
            )
            if promo is not None:
                await self._promocodes.redeem(db, promo.id, user_id, price.promo_discount)
            bonus = None
            # A fully discounted order earns the referrer nothing
            if total > 0:
                bonus = await self._referrals.process_referral_bonus(db, user_id, total)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Purchase: user=%s base=%d total=%d promo=%s tx=%d balance=%d",
            user_id, amount, total, promo.code if promo else None, tx.id, tx.balance_after,
        )
        if tx.balance_after < settings.BALANCE_LOW_THRESHOLD:
            self._webhooks.fire_and_forget(
                user_id,
                WebhookEvent.BALANCE_LOW,
                {
                    "balance": tx.balance_after,
                    "threshold": settings.BALANCE_LOW_THRESHOLD,
                    "transaction_id": tx.id,
                },
            )
        return PurchaseResponse(
            quote=QuoteResponse.build(price, promo.code if promo else None),
            transaction=TransactionItem.from_domain(tx),
            balance_cents=tx.balance_after,
            referral_bonus_paid=bonus is not None,
        )
