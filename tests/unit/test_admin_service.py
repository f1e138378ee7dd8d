"""Unit tests for AdminService: refunds, bonuses and manual adjustments."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.hb_admin.application.service import AdminService
from src.hb_common.enums import ReferenceType, TransactionType
from src.hb_common.errors import (
    InvalidAmountError,
    RefundRejectedError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from src.hb_ledger.domain.models import Transaction


def _original(**kwargs) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", 42)
    row.user_id = kwargs.get("user_id", "user-1")
    row.type = kwargs.get("type", "PURCHASE")
    row.amount = kwargs.get("amount", -30000)
    row.status = kwargs.get("status", "COMPLETED")
    return row


def _db() -> AsyncMock:
    db = AsyncMock()
    db.execute.return_value = MagicMock()
    return db


def _tx(amount: int, balance_after: int, type: str = "REFUND") -> Transaction:
    return Transaction(
        id=100,
        user_id="user-1",
        type=type,
        amount=amount,
        balance_before=balance_after - amount,
        balance_after=balance_after,
        status="COMPLETED",
    )


def _service(refunds: AsyncMock, ledger: AsyncMock) -> AdminService:
    return AdminService(ledger=ledger, refunds=refunds, notifications=AsyncMock())


class TestRefund:
    async def test_partial_refund(self) -> None:
        refunds = AsyncMock()
        refunds.lock_transaction.return_value = _original()
        refunds.sum_refunded.return_value = 10000
        ledger = AsyncMock()
        ledger.append_transaction.return_value = _tx(20000, 20000)
        db = _db()

        resp = await _service(refunds, ledger).refund(db, "admin-1", 42, 20000, "outage")

        args = ledger.append_transaction.await_args
        assert args.args[2] == TransactionType.REFUND
        assert args.args[3] == 20000
        assert args.kwargs["reference_type"] == ReferenceType.TRANSACTION
        assert args.kwargs["reference_id"] == "42"
        assert resp.refund.amount_cents == 20000
        db.commit.assert_awaited_once()

    async def test_cumulative_cap(self) -> None:
        refunds = AsyncMock()
        refunds.lock_transaction.return_value = _original()
        refunds.sum_refunded.return_value = 25000
        ledger = AsyncMock()
        db = _db()

        with pytest.raises(RefundRejectedError) as exc:
            await _service(refunds, ledger).refund(db, "admin-1", 42, 10000, None)

        assert exc.value.message == "Maximum refund amount: 50.00 ₽"
        ledger.append_transaction.assert_not_awaited()
        db.rollback.assert_awaited_once()

    async def test_unknown_transaction(self) -> None:
        refunds = AsyncMock()
        refunds.lock_transaction.return_value = None
        with pytest.raises(TransactionNotFoundError):
            await _service(refunds, AsyncMock()).refund(_db(), "admin-1", 42, 100, None)

    async def test_pending_not_refundable(self) -> None:
        refunds = AsyncMock()
        refunds.lock_transaction.return_value = _original(status="PENDING")
        with pytest.raises(RefundRejectedError):
            await _service(refunds, AsyncMock()).refund(_db(), "admin-1", 42, 100, None)

    async def test_bonus_not_refundable(self) -> None:
        refunds = AsyncMock()
        refunds.lock_transaction.return_value = _original(type="BONUS", amount=1000)
        with pytest.raises(RefundRejectedError):
            await _service(refunds, AsyncMock()).refund(_db(), "admin-1", 42, 100, None)

    async def test_non_positive_amount(self) -> None:
        with pytest.raises(InvalidAmountError):
            await _service(AsyncMock(), AsyncMock()).refund(_db(), "admin-1", 42, 0, None)


class TestMassBonus:
    async def test_per_user_commits_and_dedup(self) -> None:
        ledger = AsyncMock()
        ledger.append_transaction.side_effect = [
            _tx(500, 500, "BONUS"),
            UserNotFoundError("ghost"),
        ]
        db = _db()

        resp = await _service(AsyncMock(), ledger).mass_bonus(
            db, "admin-1", ["u1", "ghost", "u1"], 500, None
        )

        assert resp.success == 1
        assert resp.failed == 1
        assert resp.total_amount == 500
        assert ledger.append_transaction.await_count == 2
        # one commit for the credited user, one for the audit row
        assert db.commit.await_count == 2
        db.rollback.assert_awaited_once()


class TestAdjustBalance:
    async def test_add_is_bonus(self) -> None:
        ledger = AsyncMock()
        ledger.append_transaction.return_value = _tx(1000, 6000, "BONUS")
        item = await _service(AsyncMock(), ledger).adjust_balance(
            _db(), "admin-1", "user-1", "add", 1000, "goodwill"
        )
        assert item.type == "BONUS"
        ledger.subtract_clamped.assert_not_awaited()

    async def test_subtract_is_clamped(self) -> None:
        ledger = AsyncMock()
        ledger.subtract_clamped.return_value = _tx(-300, 0, "WITHDRAWAL")
        db = _db()
        item = await _service(AsyncMock(), ledger).adjust_balance(
            db, "admin-1", "user-1", "subtract", 1000, "chargeback"
        )
        assert item.amount_cents == -300
        assert item.balance_after_cents == 0
        assert ledger.subtract_clamped.await_args.args[2] == TransactionType.WITHDRAWAL
        logged = db.execute.await_args.args[1]
        assert logged["action"] == "CHANGE_BALANCE"
        db.commit.assert_awaited_once()
