"""LedgerRepository — concrete implementation of LedgerRepositoryProtocol.

Every balance mutation is one conditional PostgreSQL UPDATE ... RETURNING on the
user row; the ledger row is inserted in the same DB transaction. The UPDATE holds
the row lock until commit, so concurrent credits/debits serialize per user.
A result of 0 rows means a business constraint was violated (insufficient funds,
status already moved on).

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.enums import TransactionStatus
from src.hb_common.errors import InsufficientBalanceError, InternalError, UserNotFoundError
from src.hb_ledger.domain.models import ReconcileResult, Transaction

logger = logging.getLogger(__name__)

_TX_COLUMNS = """
    id, user_id, type, amount, balance_before, balance_after, status,
    description, payment_method, payment_id, reference_type, reference_id,
    metadata, created_at, updated_at
"""

# ---------------------------------------------------------------------------
# SQL: users.balance mutations
# ---------------------------------------------------------------------------

# Debits are guarded: a negative :amount that would overdraw matches 0 rows
_APPLY_DELTA_SQL = text("""
    UPDATE users
    SET balance = balance + :amount,
        updated_at = NOW()
    WHERE id = :user_id AND balance + :amount >= 0
    RETURNING balance
""")

_SUBTRACT_CLAMPED_SQL = text("""
    WITH old AS (
        SELECT id, balance FROM users WHERE id = :user_id FOR UPDATE
    )
    UPDATE users u
    SET balance = GREATEST(old.balance - :amount, 0),
        updated_at = NOW()
    FROM old
    WHERE u.id = old.id
    RETURNING old.balance AS balance_before, u.balance AS balance_after
""")

_GET_BALANCE_SQL = text("SELECT balance FROM users WHERE id = :user_id")

_LOCK_BALANCE_SQL = text("SELECT balance FROM users WHERE id = :user_id FOR UPDATE")

# ---------------------------------------------------------------------------
# SQL: transactions
# ---------------------------------------------------------------------------

_INSERT_TX_SQL = text(f"""
    INSERT INTO transactions
        (user_id, type, amount, balance_before, balance_after, status,
         description, payment_method, payment_id, reference_type, reference_id, metadata)
    VALUES
        (:user_id, :type, :amount, :balance_before, :balance_after, :status,
         :description, :payment_method, :payment_id, :reference_type, :reference_id,
         CAST(:metadata AS JSONB))
    RETURNING {_TX_COLUMNS}
""")

_INSERT_PENDING_SQL = text(f"""
    INSERT INTO transactions
        (user_id, type, amount, balance_before, balance_after, status,
         description, payment_method, payment_id, metadata)
    SELECT :user_id, :type, :amount, u.balance, u.balance, 'PENDING',
           :description, :payment_method, :payment_id, CAST(:metadata AS JSONB)
    FROM users u
    WHERE u.id = :user_id
    RETURNING {_TX_COLUMNS}
""")

_LOCK_PENDING_SQL = text("""
    SELECT id, user_id, amount
    FROM transactions
    WHERE id = :id AND status = 'PENDING'
    FOR UPDATE
""")

_COMPLETE_PENDING_SQL = text(f"""
    UPDATE transactions
    SET status = 'COMPLETED',
        balance_before = :balance_before,
        balance_after = :balance_after,
        updated_at = NOW()
    WHERE id = :id AND status = 'PENDING'
    RETURNING {_TX_COLUMNS}
""")

_SET_TERMINAL_SQL = text(f"""
    UPDATE transactions
    SET status = :status,
        description = COALESCE(:description, description),
        updated_at = NOW()
    WHERE id = :id AND status = 'PENDING'
    RETURNING {_TX_COLUMNS}
""")

_GET_TX_SQL = text(f"SELECT {_TX_COLUMNS} FROM transactions WHERE id = :id")

_LIST_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:type AS VARCHAR) IS NULL OR type = CAST(:type AS VARCHAR))
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_BY_TYPE_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE type = :type
      AND status = 'COMPLETED'
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
    ORDER BY id DESC
    LIMIT :limit
""")

_SUM_COMPLETED_SQL = text("""
    SELECT COALESCE(SUM(ABS(amount)), 0) AS total
    FROM transactions
    WHERE user_id = :user_id
      AND type = :type
      AND status = 'COMPLETED'
      AND (CAST(:since AS TIMESTAMPTZ) IS NULL OR created_at >= CAST(:since AS TIMESTAMPTZ))
""")

_COUNT_COMPLETED_SQL = text("""
    SELECT COUNT(*) AS cnt
    FROM transactions
    WHERE user_id = :user_id
      AND type = :type
      AND status = 'COMPLETED'
      AND (CAST(:since AS TIMESTAMPTZ) IS NULL OR created_at >= CAST(:since AS TIMESTAMPTZ))
""")

_FIND_BY_PAYMENT_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE payment_id = :payment_id AND payment_method = :payment_method
    ORDER BY id DESC
    LIMIT 1
""")

_FIND_BY_REFERENCE_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE type = :type
      AND reference_type = :reference_type
      AND reference_id = :reference_id
      AND (CAST(:user_id AS UUID) IS NULL OR user_id = CAST(:user_id AS UUID))
    ORDER BY id DESC
    LIMIT 1
""")

_RECONCILE_SQL = text("""
    SELECT u.balance AS stored_balance,
           COALESCE(SUM(t.amount) FILTER (WHERE t.status = 'COMPLETED'), 0) AS ledger_balance,
           COUNT(t.id) FILTER (WHERE t.status = 'COMPLETED') AS completed_count
    FROM users u
    LEFT JOIN transactions t ON t.user_id = u.id
    WHERE u.id = :user_id
    GROUP BY u.balance
""")


def _row_to_transaction(row: object) -> Transaction:
    metadata = row.metadata  # type: ignore[attr-defined]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Transaction(
        id=row.id,  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        type=row.type,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_before=row.balance_before,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        payment_method=row.payment_method,  # type: ignore[attr-defined]
        payment_id=row.payment_id,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        metadata=metadata or {},
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _dump_metadata(metadata: dict[str, Any] | None) -> str:
    return json.dumps(metadata or {}, default=str)


class LedgerRepository:
    """Concrete repository — balance and ledger row change together or not at all."""

    async def get_balance(self, db: AsyncSession, user_id: str) -> int | None:
        result = await db.execute(_GET_BALANCE_SQL, {"user_id": user_id})
        row = result.fetchone()
        return row.balance if row else None

    async def lock_balance(self, db: AsyncSession, user_id: str) -> int | None:
        """Row-lock the user until commit; read-check-write flows call this first."""
        result = await db.execute(_LOCK_BALANCE_SQL, {"user_id": user_id})
        row = result.fetchone()
        return row.balance if row else None

    async def append_transaction(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        amount: int,
        description: str,
        payment_method: str | None = None,
        payment_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        """Apply a signed delta to the balance and record a COMPLETED ledger row."""
        result = await db.execute(_APPLY_DELTA_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            current = await self.get_balance(db, user_id)
            if current is None:
                raise UserNotFoundError(user_id)
            raise InsufficientBalanceError(-amount, current)
        balance_after: int = row.balance
        return await self._insert(
            db,
            user_id=user_id,
            type=type,
            amount=amount,
            balance_before=balance_after - amount,
            balance_after=balance_after,
            description=description,
            payment_method=payment_method,
            payment_id=payment_id,
            reference_type=reference_type,
            reference_id=reference_id,
            metadata=metadata,
        )

    async def subtract_clamped(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        amount: int,
        description: str,
        reference_type: str | None = None,
        reference_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        """Debit up to ``amount``; the balance never goes below zero.

        The recorded amount is what was actually deducted, so the row still
        satisfies balance_after = balance_before + amount.
        """
        result = await db.execute(_SUBTRACT_CLAMPED_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError(user_id)
        deducted = row.balance_after - row.balance_before
        if deducted != -amount:
            logger.warning(
                "Clamped debit for user=%s: requested %d, deducted %d",
                user_id, amount, -deducted,
            )
        return await self._insert(
            db,
            user_id=user_id,
            type=type,
            amount=deducted,
            balance_before=row.balance_before,
            balance_after=row.balance_after,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            metadata=metadata,
        )

    async def create_pending(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        amount: int,
        description: str,
        payment_method: str | None = None,
        payment_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        result = await db.execute(
            _INSERT_PENDING_SQL,
            {
                "user_id": user_id,
                "type": type,
                "amount": amount,
                "description": description,
                "payment_method": payment_method,
                "payment_id": payment_id,
                "metadata": _dump_metadata(metadata),
            },
        )
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError(user_id)
        return _row_to_transaction(row)

    async def complete_pending(
        self, db: AsyncSession, transaction_id: int
    ) -> Transaction | None:
        """PENDING -> COMPLETED, crediting the row's amount exactly once.

        Returns None when the row is not PENDING (already processed or unknown).
        The FOR UPDATE lock makes a concurrent second caller wait and then see
        the row as no longer PENDING.
        """
        result = await db.execute(_LOCK_PENDING_SQL, {"id": transaction_id})
        pending = result.fetchone()
        if pending is None:
            return None

        result = await db.execute(
            _APPLY_DELTA_SQL, {"user_id": pending.user_id, "amount": pending.amount}
        )
        row = result.fetchone()
        if row is None:
            current = await self.get_balance(db, str(pending.user_id)) or 0
            raise InsufficientBalanceError(-pending.amount, current)
        balance_after: int = row.balance

        result = await db.execute(
            _COMPLETE_PENDING_SQL,
            {
                "id": transaction_id,
                "balance_before": balance_after - pending.amount,
                "balance_after": balance_after,
            },
        )
        completed = result.fetchone()
        if completed is None:
            raise InternalError("Pending transaction vanished while locked")
        return _row_to_transaction(completed)

    async def set_terminal_status(
        self,
        db: AsyncSession,
        transaction_id: int,
        status: str,
        description: str | None = None,
    ) -> Transaction | None:
        if status not in (TransactionStatus.FAILED, TransactionStatus.CANCELLED):
            raise InternalError(f"Not a terminal failure status: {status}")
        result = await db.execute(
            _SET_TERMINAL_SQL,
            {"id": transaction_id, "status": status, "description": description},
        )
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def get_transaction(
        self, db: AsyncSession, transaction_id: int
    ) -> Transaction | None:
        result = await db.execute(_GET_TX_SQL, {"id": transaction_id})
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        type: str | None,
    ) -> list[Transaction]:
        result = await db.execute(
            _LIST_TX_SQL,
            {"user_id": user_id, "cursor_id": cursor_id, "type": type, "limit": limit},
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def list_by_type(
        self, db: AsyncSession, type: str, cursor_id: int | None, limit: int
    ) -> list[Transaction]:
        """COMPLETED rows of one type across all users, newest first (admin views)."""
        result = await db.execute(
            _LIST_BY_TYPE_SQL, {"type": type, "cursor_id": cursor_id, "limit": limit}
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def sum_completed(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        since: datetime | None = None,
    ) -> int:
        """Sum of absolute amounts of COMPLETED rows of one type."""
        result = await db.execute(
            _SUM_COMPLETED_SQL, {"user_id": user_id, "type": type, "since": since}
        )
        return int(result.scalar_one())

    async def count_completed(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        since: datetime | None = None,
    ) -> int:
        result = await db.execute(
            _COUNT_COMPLETED_SQL, {"user_id": user_id, "type": type, "since": since}
        )
        return int(result.scalar_one())

    async def find_by_payment(
        self, db: AsyncSession, payment_id: str, payment_method: str
    ) -> Transaction | None:
        result = await db.execute(
            _FIND_BY_PAYMENT_SQL,
            {"payment_id": payment_id, "payment_method": payment_method},
        )
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def find_by_reference(
        self,
        db: AsyncSession,
        type: str,
        reference_type: str,
        reference_id: str,
        user_id: str | None = None,
    ) -> Transaction | None:
        result = await db.execute(
            _FIND_BY_REFERENCE_SQL,
            {
                "type": type,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "user_id": user_id,
            },
        )
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def reconcile(self, db: AsyncSession, user_id: str) -> ReconcileResult | None:
        result = await db.execute(_RECONCILE_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            return None
        reconciled = ReconcileResult(
            user_id=user_id,
            stored_balance=row.stored_balance,
            ledger_balance=int(row.ledger_balance),
            completed_count=int(row.completed_count),
        )
        if not reconciled.is_consistent:
            logger.error(
                "Balance drift for user=%s: stored=%d ledger=%d",
                user_id, reconciled.stored_balance, reconciled.ledger_balance,
            )
        return reconciled

    async def _insert(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        type: str,
        amount: int,
        balance_before: int,
        balance_after: int,
        description: str,
        payment_method: str | None = None,
        payment_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        result = await db.execute(
            _INSERT_TX_SQL,
            {
                "user_id": user_id,
                "type": type,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "status": TransactionStatus.COMPLETED,
                "description": description,
                "payment_method": payment_method,
                "payment_id": payment_id,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "metadata": _dump_metadata(metadata),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no row")
        return _row_to_transaction(row)
