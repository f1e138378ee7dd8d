"""PaymentService — top-ups through external providers.

Flow:
1. ``create_topup`` asks the provider for an invoice, then records a PENDING
   DEPOSIT keyed by (payment_method, payment_id).
2. The provider calls back; ``handle_webhook`` authenticates the callback and
   turns it into ``confirm_payment`` or ``fail_payment``.
3. ``confirm_payment`` moves the row PENDING -> COMPLETED and credits the
   balance exactly once; repeated callbacks report ``already_processed``.

User webhooks (PAYMENT_COMPLETED / PAYMENT_FAILED) are scheduled only after
the DB transaction has committed.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.hb_common.cents import cents_to_display
from src.hb_common.enums import (
    NotificationType,
    PaymentProvider,
    TransactionStatus,
    TransactionType,
    WebhookEvent,
)
from src.hb_common.errors import PaymentNotFoundError, PaymentProviderUnavailableError
from src.hb_ledger.domain.models import Transaction
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_notification.infrastructure.persistence import NotificationRepository
from src.hb_payment.application.schemas import (
    CreatePaymentResponse,
    PaymentMethodItem,
    PaymentMethodsResponse,
    PaymentStatusResponse,
)
from src.hb_payment.domain.models import ConfirmResult, PaymentRequest, WebhookAction
from src.hb_payment.infrastructure.providers.base import PaymentProviderClient
from src.hb_payment.infrastructure.providers.registry import (
    default_providers,
    resolve_provider,
)
from src.hb_promo.application.discount_service import DiscountService
from src.hb_webhook.application.dispatcher import WebhookDispatcher, dispatcher

logger = logging.getLogger(__name__)

# payment_method of rows created by the test-mode endpoint
TEST_PAYMENT_METHOD = "test"


class PaymentService:
    def __init__(
        self,
        ledger: LedgerRepositoryProtocol | None = None,
        discounts: DiscountService | None = None,
        notifications: NotificationRepository | None = None,
        providers: dict[PaymentProvider, PaymentProviderClient] | None = None,
        webhooks: WebhookDispatcher | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._discounts = discounts or DiscountService()
        self._notifications = notifications or NotificationRepository()
        self._providers = providers if providers is not None else default_providers()
        self._webhooks = webhooks or dispatcher

    # ------------------------------------------------------------------
    # Top-up creation
    # ------------------------------------------------------------------

    def available_methods(self) -> PaymentMethodsResponse:
        return PaymentMethodsResponse(
            methods=[
                PaymentMethodItem(
                    provider=client.provider.value,
                    name=client.display_name,
                    enabled=client.is_configured,
                    currencies=list(client.currencies),
                )
                for client in self._providers.values()
            ],
            test_mode=settings.PAYMENTS_TEST_MODE,
        )

    async def create_topup(
        self, db: AsyncSession, user_id: str, provider_name: str, amount: int
    ) -> CreatePaymentResponse:
        client = resolve_provider(self._providers, provider_name)
        client.ensure_configured()
        request = PaymentRequest(
            user_id=user_id,
            amount=amount,
            description=f"Balance top-up {cents_to_display(amount)}",
            return_url=f"{settings.APP_URL}/billing/success",
            cancel_url=f"{settings.APP_URL}/billing/cancel",
            metadata={"source": "web"},
        )
        # No DB transaction is held open across the provider round-trip
        result = await client.create_payment(request)

        try:
            tx = await self._ledger.create_pending(
                db,
                user_id,
                TransactionType.DEPOSIT,
                amount,
                f"Top-up via {client.display_name}",
                payment_method=client.provider.value,
                payment_id=result.payment_id,
                metadata={"currency": request.currency},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Top-up created: user=%s provider=%s payment_id=%s amount=%d tx=%d",
            user_id, client.provider.value, result.payment_id, amount, tx.id,
        )
        return CreatePaymentResponse(
            transaction_id=tx.id,
            provider=client.provider.value,
            payment_id=result.payment_id,
            payment_url=result.payment_url,
            amount_cents=amount,
            amount_display=cents_to_display(amount),
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def confirm_payment(
        self, db: AsyncSession, payment_id: str, provider: str
    ) -> ConfirmResult:
        """Credit a pending top-up. Safe to call any number of times."""
        try:
            pending = await self._find(db, payment_id, provider)
            if pending.status != TransactionStatus.PENDING:
                return self._already_processed(pending)

            completed = await self._ledger.complete_pending(db, pending.id)
            if completed is None:
                # Another callback settled it while we waited for the row lock
                await db.rollback()
                return self._already_processed(pending)

            await self._discounts.refresh_user_discount(db, completed.user_id)
            await self._notifications.create(
                db,
                completed.user_id,
                NotificationType.PAYMENT,
                "Balance topped up",
                f"{cents_to_display(completed.amount)} credited to your balance",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Payment confirmed: provider=%s payment_id=%s user=%s amount=%d balance=%d",
            provider, payment_id, completed.user_id, completed.amount, completed.balance_after,
        )
        self._webhooks.fire_and_forget(
            completed.user_id,
            WebhookEvent.PAYMENT_COMPLETED,
            {
                "transaction_id": completed.id,
                "provider": provider,
                "payment_id": payment_id,
                "amount": completed.amount,
                "balance": completed.balance_after,
            },
        )
        return ConfirmResult(
            user_id=completed.user_id,
            amount=completed.amount,
            status=completed.status,
            already_processed=False,
            transaction=completed,
        )

    async def fail_payment(
        self,
        db: AsyncSession,
        payment_id: str,
        provider: str,
        reason: str,
        cancelled: bool = False,
    ) -> ConfirmResult:
        """PENDING -> FAILED (or CANCELLED). Rows already settled are left alone."""
        status = TransactionStatus.CANCELLED if cancelled else TransactionStatus.FAILED
        try:
            pending = await self._find(db, payment_id, provider)
            if pending.status != TransactionStatus.PENDING:
                return self._already_processed(pending)

            failed = await self._ledger.set_terminal_status(
                db, pending.id, status, f"{pending.description} ({reason})"
            )
            if failed is None:
                await db.rollback()
                return self._already_processed(pending)

            await self._notifications.create(
                db,
                failed.user_id,
                NotificationType.PAYMENT,
                "Payment cancelled" if cancelled else "Payment failed",
                f"Top-up of {cents_to_display(failed.amount)} was not completed: {reason}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Payment %s: provider=%s payment_id=%s reason=%s",
            status.value.lower(), provider, payment_id, reason,
        )
        self._webhooks.fire_and_forget(
            failed.user_id,
            WebhookEvent.PAYMENT_FAILED,
            {
                "transaction_id": failed.id,
                "provider": provider,
                "payment_id": payment_id,
                "amount": failed.amount,
                "status": failed.status,
                "reason": reason,
            },
        )
        return ConfirmResult(
            user_id=failed.user_id,
            amount=failed.amount,
            status=failed.status,
            already_processed=False,
            transaction=failed,
        )

    async def handle_webhook(
        self,
        db: AsyncSession,
        provider_name: str,
        body: bytes,
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        """Authenticate a provider callback and apply it to the ledger."""
        client = resolve_provider(self._providers, provider_name)
        client.ensure_configured()

        outcome = client.parse_webhook(body, headers)
        outcome = await client.finalize(outcome)
        provider = client.provider.value
        logger.info(
            "Provider callback: provider=%s event=%s payment_id=%s action=%s",
            provider, outcome.event, outcome.payment_id, outcome.action.value,
        )

        if outcome.action == WebhookAction.IGNORE or outcome.payment_id is None:
            return {"received": True, "action": WebhookAction.IGNORE.value}

        if outcome.action == WebhookAction.CONFIRM:
            result = await self.confirm_payment(db, outcome.payment_id, provider)
        else:
            result = await self.fail_payment(
                db,
                outcome.payment_id,
                provider,
                outcome.reason or "Payment failed",
                cancelled=outcome.cancelled,
            )
        return {
            "received": True,
            "action": outcome.action.value,
            "already_processed": result.already_processed,
        }

    async def test_payment(
        self, db: AsyncSession, user_id: str, amount: int, success: bool = True
    ) -> PaymentStatusResponse:
        """Run a top-up through the normal settlement path without a provider."""
        if not settings.PAYMENTS_TEST_MODE:
            raise PaymentProviderUnavailableError(TEST_PAYMENT_METHOD)

        payment_id = f"TEST-{uuid.uuid4().hex}"
        try:
            await self._ledger.create_pending(
                db,
                user_id,
                TransactionType.DEPOSIT,
                amount,
                "Top-up (test payment)",
                payment_method=TEST_PAYMENT_METHOD,
                payment_id=payment_id,
                metadata={"test": True},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if success:
            result = await self.confirm_payment(db, payment_id, TEST_PAYMENT_METHOD)
        else:
            result = await self.fail_payment(
                db, payment_id, TEST_PAYMENT_METHOD, "Test payment declined"
            )
        return PaymentStatusResponse.from_result(result)

    # ------------------------------------------------------------------

    async def _find(self, db: AsyncSession, payment_id: str, provider: str) -> Transaction:
        tx = await self._ledger.find_by_payment(db, payment_id, provider)
        if tx is None or tx.type != TransactionType.DEPOSIT:
            logger.warning("Unknown payment: provider=%s payment_id=%s", provider, payment_id)
            raise PaymentNotFoundError(payment_id)
        return tx

    @staticmethod
    def _already_processed(tx: Transaction) -> ConfirmResult:
        logger.info(
            "Payment already processed: method=%s payment_id=%s status=%s",
            tx.payment_method, tx.payment_id, tx.status,
        )
        return ConfirmResult(
            user_id=tx.user_id,
            amount=tx.amount,
            status=tx.status,
            already_processed=True,
            transaction=tx,
        )
