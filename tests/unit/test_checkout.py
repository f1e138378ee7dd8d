"""Tests for purchase pricing and CheckoutService."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import settings
from src.hb_checkout.application.service import CheckoutService
from src.hb_checkout.domain.pricing import compute_price
from src.hb_common.enums import PromocodeType, ReferenceType, TransactionType, WebhookEvent
from src.hb_common.errors import (
    InsufficientBalanceError,
    PromocodeInvalidError,
    SpendingLimitExceededError,
    UserNotFoundError,
)
from src.hb_ledger.domain.models import Transaction
from src.hb_promo.domain.models import Promocode, UserDiscount, ValidationResult


def _purchase_tx(amount: int, balance_after: int) -> Transaction:
    return Transaction(
        id=77,
        user_id="user-1",
        type="PURCHASE",
        amount=-amount,
        balance_before=balance_after + amount,
        balance_after=balance_after,
        status="COMPLETED",
    )


def _deps(percent: int = 0) -> dict[str, AsyncMock | MagicMock]:
    discounts = AsyncMock()
    discounts.current_snapshot.return_value = UserDiscount("user-1", 0, percent)
    referrals = AsyncMock()
    referrals.process_referral_bonus.return_value = None
    return {
        "ledger": AsyncMock(),
        "promocodes": AsyncMock(),
        "discounts": discounts,
        "limits": AsyncMock(),
        "referrals": referrals,
        "webhooks": MagicMock(),
    }


class TestComputePrice:
    def test_promo_then_volume(self) -> None:
        price = compute_price(100000, 20000, 5)
        assert price.volume_discount == 4000
        assert price.total == 76000

    def test_promo_clamped_to_base(self) -> None:
        price = compute_price(10000, 50000, 10)
        assert price.promo_discount == 10000
        assert price.total == 0

    def test_volume_floors(self) -> None:
        assert compute_price(999, 0, 3).volume_discount == 29


class TestQuote:
    async def test_with_promocode(self) -> None:
        deps = _deps(percent=5)
        promo = Promocode(id="p-1", code="SALE", type=PromocodeType.PERCENT, value=10)
        deps["promocodes"].validate.return_value = ValidationResult(True, promocode=promo, discount=10000)
        db = AsyncMock()

        quote = await CheckoutService(**deps).quote(db, "user-1", 100000, "sale", "VPS")

        assert quote.promocode == "SALE"
        assert quote.total == 85500
        db.commit.assert_awaited_once()

    async def test_invalid_promocode(self) -> None:
        deps = _deps()
        deps["promocodes"].validate.return_value = ValidationResult.reject("Promocode has expired")
        with pytest.raises(PromocodeInvalidError):
            await CheckoutService(**deps).quote(AsyncMock(), "user-1", 100000, "OLD")

    async def test_balance_promocode_rejected(self) -> None:
        deps = _deps()
        promo = Promocode(id="p-2", code="GIFT", type=PromocodeType.BALANCE, value=10000)
        deps["promocodes"].validate.return_value = ValidationResult(True, promocode=promo, discount=10000)
        with pytest.raises(PromocodeInvalidError):
            await CheckoutService(**deps).quote(AsyncMock(), "user-1", 100000, "GIFT")

    async def test_plan_restricted_promocode_needs_plan_type(self) -> None:
        deps = _deps()
        promo = Promocode(
            id="p-3", code="VPSONLY", type=PromocodeType.PERCENT, value=20, plan_types=["VPS"]
        )
        deps["promocodes"].validate.return_value = ValidationResult(True, promocode=promo, discount=20000)
        with pytest.raises(PromocodeInvalidError):
            await CheckoutService(**deps).quote(AsyncMock(), "user-1", 100000, "VPSONLY")

        quote = await CheckoutService(**deps).quote(AsyncMock(), "user-1", 100000, "VPSONLY", "VPS")
        assert quote.total == 80000


class TestPurchase:
    async def test_full_path(self) -> None:
        deps = _deps(percent=10)
        promo = Promocode(id="p-1", code="SALE", type=PromocodeType.FIXED, value=20000)
        deps["promocodes"].validate.return_value = ValidationResult(True, promocode=promo, discount=20000)
        deps["ledger"].lock_balance.return_value = 500000
        deps["ledger"].append_transaction.return_value = _purchase_tx(72000, 428000)
        db = AsyncMock()

        resp = await CheckoutService(**deps).purchase(
            db, "user-1", 100000, "VPS S plan", "SALE", "VPS"
        )

        deps["limits"].check_and_consume.assert_awaited_once_with(db, "user-1", 72000)
        args = deps["ledger"].append_transaction.await_args
        assert args.args[2] == TransactionType.PURCHASE
        assert args.args[3] == -72000
        assert args.kwargs["reference_type"] == ReferenceType.PROMOCODE
        assert args.kwargs["metadata"]["volume_discount"] == 8000
        deps["promocodes"].redeem.assert_awaited_once_with(db, "p-1", "user-1", 20000)
        deps["referrals"].process_referral_bonus.assert_awaited_once_with(db, "user-1", 72000)
        db.commit.assert_awaited_once()
        assert resp.balance_cents == 428000
        assert resp.referral_bonus_paid is False
        deps["webhooks"].fire_and_forget.assert_not_called()

    async def test_insufficient_balance(self) -> None:
        deps = _deps()
        deps["ledger"].lock_balance.return_value = 5000
        db = AsyncMock()
        with pytest.raises(InsufficientBalanceError):
            await CheckoutService(**deps).purchase(db, "user-1", 10000, "plan")
        deps["ledger"].append_transaction.assert_not_awaited()
        db.rollback.assert_awaited_once()

    async def test_spending_limit_blocks(self) -> None:
        deps = _deps()
        deps["ledger"].lock_balance.return_value = 500000
        deps["limits"].check_and_consume.side_effect = SpendingLimitExceededError(
            "daily", 10000, 9000
        )
        with pytest.raises(SpendingLimitExceededError):
            await CheckoutService(**deps).purchase(AsyncMock(), "user-1", 10000, "plan")
        deps["ledger"].append_transaction.assert_not_awaited()

    async def test_unknown_user(self) -> None:
        deps = _deps()
        deps["ledger"].lock_balance.return_value = None
        with pytest.raises(UserNotFoundError):
            await CheckoutService(**deps).purchase(AsyncMock(), "ghost", 10000, "plan")

    async def test_low_balance_webhook_after_commit(self) -> None:
        deps = _deps()
        deps["ledger"].lock_balance.return_value = 15000
        deps["ledger"].append_transaction.return_value = _purchase_tx(10000, 5000)
        deps["referrals"].process_referral_bonus.return_value = MagicMock()

        resp = await CheckoutService(**deps).purchase(AsyncMock(), "user-1", 10000, "plan")

        assert 5000 < settings.BALANCE_LOW_THRESHOLD
        call = deps["webhooks"].fire_and_forget.call_args
        assert call.args[1] == WebhookEvent.BALANCE_LOW
        assert call.args[2]["balance"] == 5000
        assert resp.referral_bonus_paid is True
        deps["promocodes"].redeem.assert_not_awaited()

    async def test_fully_discounted_order_pays_no_referral(self) -> None:
        deps = _deps()
        promo = Promocode(id="p-4", code="FREE", type=PromocodeType.FIXED, value=50000)
        deps["promocodes"].validate.return_value = ValidationResult(True, promocode=promo, discount=30000)
        deps["ledger"].lock_balance.return_value = 0
        deps["ledger"].append_transaction.return_value = _purchase_tx(0, 0)

        resp = await CheckoutService(**deps).purchase(
            AsyncMock(), "user-1", 30000, "Web hosting", "FREE"
        )

        assert deps["ledger"].append_transaction.await_args.args[3] == 0
        deps["referrals"].process_referral_bonus.assert_not_awaited()
        assert resp.referral_bonus_paid is False
