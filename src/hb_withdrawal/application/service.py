"""WithdrawalService — payout requests and their admin review.

Balance is debited only when an admin marks a request COMPLETED. Until then
the requested amount is held back from ``available`` so a user cannot
request the same money twice.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.infrastructure.audit import record_admin_action
from src.hb_common.cents import cents_to_display
from src.hb_common.enums import (
    NotificationType,
    ReferenceType,
    TransactionType,
    WithdrawalStatus,
)
from src.hb_common.errors import (
    InsufficientBalanceError,
    InvalidStatusTransitionError,
    NotOwnerError,
    UserNotFoundError,
    WithdrawalNotFoundError,
    WithdrawalRejectedError,
)
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_notification.infrastructure.persistence import NotificationRepository
from src.hb_withdrawal.application.schemas import (
    AdminWithdrawalDetailResponse,
    AdminWithdrawalListResponse,
    CreateWithdrawalRequest,
    WithdrawalBalance,
    WithdrawalItem,
    WithdrawalListResponse,
)
from src.hb_withdrawal.domain.models import (
    MAX_ACTIVE_REQUESTS,
    MIN_WITHDRAWAL,
    available_for_withdrawal,
    can_transition,
)
from src.hb_withdrawal.infrastructure.persistence import WithdrawalRepository

logger = logging.getLogger(__name__)

_STATUS_TITLES = {
    WithdrawalStatus.PROCESSING: "Withdrawal in progress",
    WithdrawalStatus.COMPLETED: "Withdrawal completed",
    WithdrawalStatus.REJECTED: "Withdrawal rejected",
}


class WithdrawalService:
    def __init__(
        self,
        repo: WithdrawalRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self._repo = repo or WithdrawalRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._notifications = notifications or NotificationRepository()

    async def _balance(self, db: AsyncSession, user_id: str, current: int) -> WithdrawalBalance:
        _, pending = await self._repo.active_summary(db, user_id)
        bonus_total = await self._ledger.sum_completed(db, user_id, TransactionType.BONUS)
        return WithdrawalBalance(
            current=current,
            pending=pending,
            available=available_for_withdrawal(current, pending, bonus_total),
        )

    # ------------------------------------------------------------------
    # User side
    # ------------------------------------------------------------------

    async def list_for_user(self, db: AsyncSession, user_id: str) -> WithdrawalListResponse:
        current = await self._ledger.get_balance(db, user_id)
        if current is None:
            raise UserNotFoundError(user_id)
        requests = await self._repo.list_for_user(db, user_id)
        return WithdrawalListResponse(
            items=[WithdrawalItem.from_domain(r) for r in requests],
            balance=await self._balance(db, user_id, current),
        )

    async def create_request(
        self, db: AsyncSession, user_id: str, req: CreateWithdrawalRequest
    ) -> WithdrawalItem:
        if req.amount < MIN_WITHDRAWAL:
            raise WithdrawalRejectedError(
                f"Minimum withdrawal amount: {cents_to_display(MIN_WITHDRAWAL)}"
            )
        try:
            current = await self._ledger.lock_balance(db, user_id)
            if current is None:
                raise UserNotFoundError(user_id)

            active_count, _ = await self._repo.active_summary(db, user_id)
            if active_count >= MAX_ACTIVE_REQUESTS:
                raise WithdrawalRejectedError(
                    f"At most {MAX_ACTIVE_REQUESTS} withdrawal requests can be open at once"
                )
            balance = await self._balance(db, user_id, current)
            if req.amount > balance.available:
                raise WithdrawalRejectedError(
                    "Insufficient funds for withdrawal. "
                    f"Available: {cents_to_display(balance.available)}"
                )

            created = await self._repo.create(
                db, user_id, req.amount, req.method.value, req.details
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Withdrawal requested: user=%s id=%s amount=%d method=%s",
            user_id, created.id, created.amount, created.method,
        )
        return WithdrawalItem.from_domain(created)

    async def cancel(self, db: AsyncSession, user_id: str, request_id: str) -> None:
        """Withdraw a PENDING request. Requests already picked up cannot be cancelled."""
        try:
            existing = await self._repo.get(db, request_id)
            if existing is None:
                raise WithdrawalNotFoundError(request_id)
            if existing.user_id != user_id:
                raise NotOwnerError()
            if existing.status != WithdrawalStatus.PENDING:
                raise WithdrawalRejectedError("Only pending requests can be cancelled")
            if not await self._repo.delete_pending(db, user_id, request_id):
                raise WithdrawalRejectedError("Only pending requests can be cancelled")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Withdrawal cancelled: user=%s id=%s", user_id, request_id)

    # ------------------------------------------------------------------
    # Admin side
    # ------------------------------------------------------------------

    async def list_all(
        self, db: AsyncSession, status: str | None, limit: int
    ) -> AdminWithdrawalListResponse:
        requests = await self._repo.list_all(db, status, limit)
        return AdminWithdrawalListResponse(
            items=[WithdrawalItem.from_domain(r) for r in requests]
        )

    async def get_detail(self, db: AsyncSession, request_id: str) -> AdminWithdrawalDetailResponse:
        found = await self._repo.get(db, request_id)
        if found is None:
            raise WithdrawalNotFoundError(request_id)
        history = await self._repo.list_for_user(db, found.user_id, limit=10)
        balance = await self._ledger.get_balance(db, found.user_id)
        return AdminWithdrawalDetailResponse(
            request=WithdrawalItem.from_domain(found),
            user_balance=balance or 0,
            history=[WithdrawalItem.from_domain(r) for r in history],
        )

    async def update_status(
        self,
        db: AsyncSession,
        admin_id: str,
        request_id: str,
        target: WithdrawalStatus,
        admin_note: str | None,
    ) -> WithdrawalItem:
        """Move a request along PENDING -> PROCESSING -> COMPLETED | REJECTED.

        COMPLETED debits the balance in the same transaction; if the user no
        longer has the funds the whole change is rolled back.
        """
        try:
            existing = await self._repo.get(db, request_id)
            if existing is None:
                raise WithdrawalNotFoundError(request_id)
            if not can_transition(existing.status, target):
                raise InvalidStatusTransitionError(existing.status, target.value)

            updated = await self._repo.transition(
                db, request_id, existing.status, target.value, admin_note
            )
            if updated is None:
                # Status changed under us between read and update
                raise InvalidStatusTransitionError(existing.status, target.value)

            balance_after = None
            if target == WithdrawalStatus.COMPLETED:
                current = await self._ledger.lock_balance(db, updated.user_id)
                if current is None or current < updated.amount:
                    raise InsufficientBalanceError(updated.amount, current or 0)
                tx = await self._ledger.subtract_clamped(
                    db,
                    updated.user_id,
                    TransactionType.WITHDRAWAL,
                    updated.amount,
                    f"Withdrawal via {updated.method}",
                    reference_type=ReferenceType.WITHDRAWAL_REQUEST,
                    reference_id=updated.id,
                    metadata={"admin_id": admin_id, "method": updated.method},
                )
                balance_after = tx.balance_after

            message = f"Request for {cents_to_display(updated.amount)}: {target.value.lower()}"
            if admin_note:
                message = f"{message}. {admin_note}"
            await self._notifications.create(
                db,
                updated.user_id,
                NotificationType.WITHDRAWAL,
                _STATUS_TITLES[target],
                message,
            )
            await record_admin_action(
                db,
                admin_id,
                "WITHDRAWAL_STATUS_CHANGED",
                target=f"withdrawal:{request_id}",
                details={
                    "user_id": updated.user_id,
                    "amount": updated.amount,
                    "old_status": existing.status,
                    "new_status": target.value,
                    "note": admin_note,
                    "balance_after": balance_after,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Withdrawal %s -> %s: id=%s admin=%s",
            existing.status, target.value, request_id, admin_id,
        )
        return WithdrawalItem.from_domain(updated)
