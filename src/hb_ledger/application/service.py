"""LedgerApplicationService — read side of the balance account.

Balance mutations are not exposed here: other contexts call the repository
directly inside their own DB transaction so that ledger row, balance update and
their own side effects commit together.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.errors import NotOwnerError, TransactionNotFoundError, UserNotFoundError
from src.hb_ledger.application.schemas import (
    BalanceResponse,
    ReconcileResponse,
    TransactionItem,
    TransactionListResponse,
    cursor_decode,
    cursor_encode,
)
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository

_GET_BALANCES_SQL = text(
    "SELECT balance, referral_balance FROM users WHERE id = :user_id"
)


class LedgerApplicationService:
    def __init__(self, repo: LedgerRepositoryProtocol | None = None) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        result = await db.execute(_GET_BALANCES_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError(user_id)
        return BalanceResponse.from_cents(user_id, row.balance, row.referral_balance)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        type: str | None,
    ) -> TransactionListResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        txs = await self._repo.list_transactions(db, user_id, cursor_id, limit + 1, type)
        has_more = len(txs) > limit
        page = txs[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return TransactionListResponse(
            items=[TransactionItem.from_domain(t) for t in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_transaction(
        self, db: AsyncSession, user_id: str, transaction_id: int
    ) -> TransactionItem:
        tx = await self._repo.get_transaction(db, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        if tx.user_id != user_id:
            raise NotOwnerError()
        return TransactionItem.from_domain(tx)

    async def reconcile(self, db: AsyncSession, user_id: str) -> ReconcileResponse:
        result = await self._repo.reconcile(db, user_id)
        if result is None:
            raise UserNotFoundError(user_id)
        return ReconcileResponse.from_domain(result)
