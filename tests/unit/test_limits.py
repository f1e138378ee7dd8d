"""Tests for spending limits: pure guard math and SpendingLimitService."""

from unittest.mock import AsyncMock

import pytest

from src.hb_common.enums import TransactionType
from src.hb_common.errors import SpendingLimitExceededError
from src.hb_limits.application.schemas import UpdateLimitsRequest
from src.hb_limits.application.service import SpendingLimitService
from src.hb_limits.domain.guard import SpendingLimit, evaluate_spend, spend_stats


def _limit(**kwargs) -> SpendingLimit:
    defaults = dict(user_id="user-1", daily_limit=100000, monthly_limit=500000, is_enabled=True)
    defaults.update(kwargs)
    return SpendingLimit(**defaults)


class TestEvaluateSpend:
    def test_disabled_never_breaches(self) -> None:
        assert evaluate_spend(_limit(is_enabled=False), 10**9, 10**9, 1) is None

    def test_no_limit_row(self) -> None:
        assert evaluate_spend(None, 0, 0, 10**9) is None

    def test_exactly_at_cap_is_allowed(self) -> None:
        assert evaluate_spend(_limit(), 60000, 60000, 40000) is None

    def test_daily_checked_first(self) -> None:
        breach = evaluate_spend(_limit(), 90000, 490000, 20000)
        assert breach is not None
        assert breach.period == "daily"
        assert breach.spent == 90000

    def test_monthly(self) -> None:
        breach = evaluate_spend(_limit(daily_limit=None), 0, 490000, 20000)
        assert breach is not None and breach.period == "monthly"


class TestSpendStats:
    def test_remaining_and_alert(self) -> None:
        stats = spend_stats(_limit(alert_at=80), 80000, 100000)
        assert stats.today_remaining == 20000
        assert stats.month_remaining == 400000
        assert stats.alert_triggered is True

    def test_remaining_never_negative(self) -> None:
        stats = spend_stats(_limit(), 150000, 0)
        assert stats.today_remaining == 0

    def test_no_limit(self) -> None:
        stats = spend_stats(None, 5000, 5000)
        assert stats.today_remaining is None
        assert stats.alert_triggered is False


class TestSpendingLimitService:
    async def test_check_skips_when_disabled(self) -> None:
        repo = AsyncMock()
        repo.get.return_value = _limit(is_enabled=False)
        ledger = AsyncMock()
        await SpendingLimitService(repo=repo, ledger=ledger).check_and_consume(
            AsyncMock(), "user-1", 10**9
        )
        ledger.sum_completed.assert_not_awaited()

    async def test_check_raises_on_breach(self) -> None:
        repo = AsyncMock()
        repo.get.return_value = _limit()
        ledger = AsyncMock()
        ledger.sum_completed.side_effect = [95000, 95000]
        with pytest.raises(SpendingLimitExceededError) as exc:
            await SpendingLimitService(repo=repo, ledger=ledger).check_and_consume(
                AsyncMock(), "user-1", 10000
            )
        assert exc.value.message.startswith("Daily spending limit exceeded")
        assert ledger.sum_completed.await_args.args[2] == TransactionType.PURCHASE

    async def test_update_treats_zero_as_no_cap(self) -> None:
        repo = AsyncMock()
        repo.upsert.side_effect = lambda db, limit: limit
        ledger = AsyncMock()
        ledger.sum_completed.return_value = 0
        db = AsyncMock()

        resp = await SpendingLimitService(repo=repo, ledger=ledger).update_limits(
            db, "user-1", UpdateLimitsRequest(daily_limit=0, monthly_limit=300000)
        )

        saved = repo.upsert.await_args.args[1]
        assert saved.daily_limit is None
        assert saved.monthly_limit == 300000
        assert resp.limit is not None and resp.limit.daily_limit is None
        assert resp.stats.month_remaining == 300000
        db.commit.assert_awaited_once()
