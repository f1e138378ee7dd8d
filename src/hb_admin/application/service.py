"""AdminService — operator-initiated ledger writes and audit views.

Every mutation writes an admin_logs row in the same DB transaction as the
ledger change. Mass bonus is the exception to one-transaction-per-call: each
user is credited in its own transaction so one bad id does not undo the rest.
"""

import logging
from typing import Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.application.schemas import (
    AuditLogResponse,
    MassBonusResponse,
    RefundListResponse,
    RefundResponse,
)
from src.hb_admin.infrastructure.audit import list_admin_actions, record_admin_action
from src.hb_admin.infrastructure.persistence import RefundRepository
from src.hb_common.cents import cents_to_display
from src.hb_common.datetime_utils import start_of_month, utc_now
from src.hb_common.enums import (
    NotificationType,
    ReferenceType,
    TransactionStatus,
    TransactionType,
)
from src.hb_common.errors import (
    AppError,
    InvalidAmountError,
    RefundRejectedError,
    TransactionNotFoundError,
)
from src.hb_ledger.application.schemas import (
    ReconcileResponse,
    TransactionItem,
    cursor_decode,
    cursor_encode,
)
from src.hb_ledger.application.service import LedgerApplicationService
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_notification.infrastructure.persistence import NotificationRepository

logger = logging.getLogger(__name__)

# Ledger rows that can be refunded
_REFUNDABLE_TYPES = frozenset({TransactionType.PURCHASE, TransactionType.DEPOSIT})


class AdminService:
    def __init__(
        self,
        ledger: LedgerRepositoryProtocol | None = None,
        refunds: RefundRepository | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._refunds = refunds or RefundRepository()
        self._notifications = notifications or NotificationRepository()
        self._ledger_reads = LedgerApplicationService(self._ledger)

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    async def refund(
        self,
        db: AsyncSession,
        admin_id: str,
        transaction_id: int,
        amount: int,
        reason: str | None,
    ) -> RefundResponse:
        """Credit back up to the original amount, less earlier refunds of it."""
        if amount <= 0:
            raise InvalidAmountError("refund must be positive")
        try:
            original = await self._refunds.lock_transaction(db, transaction_id)
            if original is None:
                raise TransactionNotFoundError(transaction_id)
            if original.status != TransactionStatus.COMPLETED:
                raise RefundRejectedError("Only completed transactions can be refunded")
            if original.type not in _REFUNDABLE_TYPES:
                raise RefundRejectedError(f"{original.type} transactions cannot be refunded")

            refunded = await self._refunds.sum_refunded(db, transaction_id)
            remaining = abs(original.amount) - refunded
            if amount > remaining:
                raise RefundRejectedError(
                    f"Maximum refund amount: {cents_to_display(max(remaining, 0))}"
                )

            user_id = str(original.user_id)
            tx = await self._ledger.append_transaction(
                db,
                user_id,
                TransactionType.REFUND,
                amount,
                reason or "Refund",
                reference_type=ReferenceType.TRANSACTION,
                reference_id=str(transaction_id),
                metadata={"admin_id": admin_id, "original_amount": original.amount},
            )
            await self._notifications.create(
                db,
                user_id,
                NotificationType.PAYMENT,
                "Refund",
                f"{cents_to_display(amount)} refunded to your balance",
            )
            await record_admin_action(
                db,
                admin_id,
                "REFUND_PROCESSED",
                target=f"transaction:{transaction_id}",
                details={
                    "user_id": user_id,
                    "amount": amount,
                    "reason": reason,
                    "original_amount": original.amount,
                    "refund_transaction_id": tx.id,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Refund processed: admin=%s original_tx=%d amount=%d", admin_id, transaction_id, amount
        )
        return RefundResponse(
            refund=TransactionItem.from_domain(tx),
            message=f"Refund of {cents_to_display(amount)} processed",
        )

    async def list_refunds(
        self, db: AsyncSession, cursor: str | None, limit: int
    ) -> RefundListResponse:
        txs = await self._ledger.list_by_type(
            db, TransactionType.REFUND, cursor_decode(cursor), limit + 1
        )
        has_more = len(txs) > limit
        page = txs[:limit]
        stats = await self._refunds.stats(db, start_of_month(utc_now()))
        return RefundListResponse(
            items=[TransactionItem.from_domain(t) for t in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Bonuses and manual adjustments
    # ------------------------------------------------------------------

    async def mass_bonus(
        self,
        db: AsyncSession,
        admin_id: str,
        user_ids: list[str],
        amount: int,
        reason: str | None,
    ) -> MassBonusResponse:
        if amount <= 0:
            raise InvalidAmountError("bonus must be positive")
        description = reason or "Bonus from administrator"
        # Duplicates in the list would credit a user twice
        unique_ids = list(dict.fromkeys(user_ids))
        success = 0
        failed = 0

        for user_id in unique_ids:
            try:
                await self._ledger.append_transaction(
                    db,
                    user_id,
                    TransactionType.BONUS,
                    amount,
                    description,
                    reference_type=ReferenceType.ADMIN,
                    reference_id=admin_id,
                    metadata={"admin_id": admin_id, "mass_bonus": True},
                )
                await self._notifications.create(
                    db,
                    user_id,
                    NotificationType.PAYMENT,
                    "Bonus credited",
                    f"{cents_to_display(amount)} credited to your balance: {description}",
                )
                await db.commit()
                success += 1
            except (AppError, SQLAlchemyError) as exc:
                await db.rollback()
                failed += 1
                logger.warning("Mass bonus failed for user=%s: %s", user_id, exc)

        total_amount = amount * success
        try:
            await record_admin_action(
                db,
                admin_id,
                "MASS_BONUS_SENT",
                details={
                    "user_count": len(unique_ids),
                    "amount": amount,
                    "total_amount": total_amount,
                    "reason": reason,
                    "success": success,
                    "failed": failed,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Mass bonus by admin=%s: success=%d failed=%d total=%d",
            admin_id, success, failed, total_amount,
        )
        return MassBonusResponse(success=success, failed=failed, total_amount=total_amount)

    async def adjust_balance(
        self,
        db: AsyncSession,
        admin_id: str,
        user_id: str,
        action: Literal["add", "subtract"],
        amount: int,
        reason: str,
    ) -> TransactionItem:
        """``add`` credits a BONUS; ``subtract`` debits, never below zero."""
        if amount <= 0:
            raise InvalidAmountError("adjustment must be positive")
        try:
            if action == "add":
                tx = await self._ledger.append_transaction(
                    db,
                    user_id,
                    TransactionType.BONUS,
                    amount,
                    reason,
                    reference_type=ReferenceType.ADMIN,
                    reference_id=admin_id,
                    metadata={"admin_id": admin_id, "manual": True},
                )
            else:
                tx = await self._ledger.subtract_clamped(
                    db,
                    user_id,
                    TransactionType.WITHDRAWAL,
                    amount,
                    reason,
                    reference_type=ReferenceType.ADMIN,
                    reference_id=admin_id,
                    metadata={"admin_id": admin_id, "manual": True},
                )
            await record_admin_action(
                db,
                admin_id,
                "CHANGE_BALANCE",
                target=f"user:{user_id}",
                details={
                    "action": action,
                    "requested": amount,
                    "applied": tx.amount,
                    "balance_after": tx.balance_after,
                    "reason": reason,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Balance adjusted by admin=%s user=%s action=%s amount=%d",
            admin_id, user_id, action, tx.amount,
        )
        return TransactionItem.from_domain(tx)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def list_audit(
        self, db: AsyncSession, action: str | None, cursor: str | None, limit: int
    ) -> AuditLogResponse:
        rows = await list_admin_actions(db, action, cursor_decode(cursor), limit + 1)
        has_more = len(rows) > limit
        page = rows[:limit]
        return AuditLogResponse(
            items=page,
            next_cursor=cursor_encode(page[-1]["id"]) if has_more and page else None,
            has_more=has_more,
        )

    async def reconcile(self, db: AsyncSession, user_id: str) -> ReconcileResponse:
        return await self._ledger_reads.reconcile(db, user_id)
