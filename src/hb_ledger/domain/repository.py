"""Repository Protocol — dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_ledger.domain.models import ReconcileResult, Transaction


class LedgerRepositoryProtocol(Protocol):
    async def get_balance(self, db: AsyncSession, user_id: str) -> int | None: ...

    async def lock_balance(self, db: AsyncSession, user_id: str) -> int | None: ...

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
    ) -> Transaction: ...

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
    ) -> Transaction: ...

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
    ) -> Transaction: ...

    async def complete_pending(
        self, db: AsyncSession, transaction_id: int
    ) -> Transaction | None: ...

    async def set_terminal_status(
        self,
        db: AsyncSession,
        transaction_id: int,
        status: str,
        description: str | None = None,
    ) -> Transaction | None: ...

    async def get_transaction(
        self, db: AsyncSession, transaction_id: int
    ) -> Transaction | None: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        type: str | None,
    ) -> list[Transaction]: ...

    async def list_by_type(
        self, db: AsyncSession, type: str, cursor_id: int | None, limit: int
    ) -> list[Transaction]: ...

    async def sum_completed(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        since: datetime | None = None,
    ) -> int: ...

    async def count_completed(
        self,
        db: AsyncSession,
        user_id: str,
        type: str,
        since: datetime | None = None,
    ) -> int: ...

    async def find_by_payment(
        self, db: AsyncSession, payment_id: str, payment_method: str
    ) -> Transaction | None: ...

    async def find_by_reference(
        self,
        db: AsyncSession,
        type: str,
        reference_type: str,
        reference_id: str,
        user_id: str | None = None,
    ) -> Transaction | None: ...

    async def reconcile(self, db: AsyncSession, user_id: str) -> ReconcileResult | None: ...
