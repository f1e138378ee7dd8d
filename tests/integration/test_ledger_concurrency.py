"""Concurrent balance writes against PostgreSQL.

Each coroutine uses its own session, so the row lock taken by the conditional
balance UPDATE is what serializes them.

Run: pytest -m integration tests/integration/test_ledger_concurrency.py -v
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from src.hb_common.database import async_session_factory
from src.hb_common.enums import PaymentProvider, TransactionStatus, TransactionType
from src.hb_common.errors import InsufficientBalanceError
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_payment.application.service import PaymentService

UserFactory = Callable[..., Awaitable[dict[str, str]]]

pytestmark = [pytest.mark.integration, pytest.mark.asyncio(loop_scope="session")]

WRITERS = 8
DEBIT = 1_250


async def _credit(user_id: str, amount: int) -> None:
    async with async_session_factory() as db:
        await LedgerRepository().append_transaction(
            db, user_id, TransactionType.BONUS, amount, "Seed balance"
        )
        await db.commit()


async def _debit(user_id: str, amount: int) -> None:
    async with async_session_factory() as db:
        try:
            await LedgerRepository().append_transaction(
                db, user_id, TransactionType.PURCHASE, -amount, "Concurrent order"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise


class TestConcurrentDebits:
    async def test_parallel_debits_drain_exactly_to_zero(self, make_user: UserFactory) -> None:
        user_id = (await make_user())["user_id"]
        await _credit(user_id, DEBIT * WRITERS)

        await asyncio.gather(*(_debit(user_id, DEBIT) for _ in range(WRITERS)))

        async with async_session_factory() as db:
            repo = LedgerRepository()
            assert await repo.get_balance(db, user_id) == 0
            reconciled = await repo.reconcile(db, user_id)
        assert reconciled is not None
        assert reconciled.is_consistent
        assert reconciled.completed_count == WRITERS + 1

        with pytest.raises(InsufficientBalanceError):
            await _debit(user_id, 1)

    async def test_overdraw_race_has_single_winner(self, make_user: UserFactory) -> None:
        user_id = (await make_user())["user_id"]
        await _credit(user_id, DEBIT)

        outcomes = await asyncio.gather(
            *(_debit(user_id, DEBIT) for _ in range(WRITERS)), return_exceptions=True
        )

        assert outcomes.count(None) == 1
        assert all(
            isinstance(o, InsufficientBalanceError) for o in outcomes if o is not None
        )
        async with async_session_factory() as db:
            assert await LedgerRepository().get_balance(db, user_id) == 0


class TestConcurrentConfirmation:
    async def test_duplicate_callbacks_credit_once(self, make_user: UserFactory) -> None:
        user_id = (await make_user())["user_id"]
        payment_id = f"cs_test_{uuid.uuid4().hex}"
        provider = PaymentProvider.STRIPE.value
        async with async_session_factory() as db:
            pending = await LedgerRepository().create_pending(
                db,
                user_id,
                TransactionType.DEPOSIT,
                50_000,
                "Top-up via Stripe",
                payment_method=provider,
                payment_id=payment_id,
            )
            await db.commit()

        service = PaymentService(webhooks=MagicMock())

        async def _confirm() -> bool:
            async with async_session_factory() as db:
                result = await service.confirm_payment(db, payment_id, provider)
            return result.already_processed

        flags = await asyncio.gather(*(_confirm() for _ in range(WRITERS)))

        assert flags.count(False) == 1
        async with async_session_factory() as db:
            assert await LedgerRepository().get_balance(db, user_id) == 50_000
            status = (
                await db.execute(
                    text("SELECT status FROM transactions WHERE id = :id"), {"id": pending.id}
                )
            ).scalar_one()
            reconciled = await LedgerRepository().reconcile(db, user_id)
        assert status == TransactionStatus.COMPLETED.value
        assert reconciled is not None and reconciled.is_consistent
