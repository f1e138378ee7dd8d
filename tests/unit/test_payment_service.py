"""Unit tests for PaymentService: settlement idempotency and callback routing."""

from collections.abc import Mapping
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import settings
from src.hb_common.enums import PaymentProvider, TransactionType, WebhookEvent
from src.hb_common.errors import PaymentNotFoundError, PaymentProviderUnavailableError
from src.hb_ledger.domain.models import Transaction
from src.hb_payment.application.service import TEST_PAYMENT_METHOD, PaymentService
from src.hb_payment.domain.models import PaymentResult, WebhookOutcome
from src.hb_payment.infrastructure.providers.base import PaymentProviderClient


def _tx(status: str = "PENDING", **kwargs) -> Transaction:
    defaults = dict(
        id=10,
        user_id="user-1",
        type=TransactionType.DEPOSIT,
        amount=50000,
        balance_before=0,
        balance_after=0,
        status=status,
        description="Top-up via Fake",
        payment_method="yookassa",
        payment_id="pay-1",
        created_at=datetime.now(UTC),
    )
    defaults.update(kwargs)
    return Transaction(**defaults)


class FakeClient(PaymentProviderClient):
    provider = PaymentProvider.YOOKASSA
    display_name = "Fake"

    def __init__(self, outcome: WebhookOutcome | None = None, configured: bool = True) -> None:
        super().__init__()
        self.outcome = outcome
        self.configured = configured

    @property
    def base_url(self) -> str:
        return "https://fake.test"

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def create_payment(self, request) -> PaymentResult:  # type: ignore[no-untyped-def]
        return PaymentResult(payment_id="pay-1", payment_url="https://fake.test/pay")

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        assert self.outcome is not None
        return self.outcome


def _service(ledger: AsyncMock, client: FakeClient | None = None) -> tuple[PaymentService, MagicMock]:
    webhooks = MagicMock()
    svc = PaymentService(
        ledger=ledger,
        discounts=AsyncMock(),
        notifications=AsyncMock(),
        providers={PaymentProvider.YOOKASSA: client or FakeClient()},
        webhooks=webhooks,
    )
    return svc, webhooks


class TestCreateTopup:
    async def test_records_pending_deposit(self) -> None:
        ledger = AsyncMock()
        ledger.create_pending.return_value = _tx()
        svc, _ = _service(ledger)
        db = AsyncMock()

        resp = await svc.create_topup(db, "user-1", "yookassa", 50000)

        kwargs = ledger.create_pending.await_args.kwargs
        assert kwargs["payment_method"] == "yookassa"
        assert kwargs["payment_id"] == "pay-1"
        assert resp.payment_url == "https://fake.test/pay"
        assert resp.amount_display == "500.00 ₽"
        db.commit.assert_awaited_once()

    async def test_unconfigured_provider(self) -> None:
        svc, _ = _service(AsyncMock(), FakeClient(configured=False))
        with pytest.raises(PaymentProviderUnavailableError):
            await svc.create_topup(AsyncMock(), "user-1", "yookassa", 50000)

    async def test_unknown_provider(self) -> None:
        svc, _ = _service(AsyncMock())
        with pytest.raises(PaymentProviderUnavailableError):
            await svc.create_topup(AsyncMock(), "user-1", "stripe", 50000)


class TestConfirmPayment:
    async def test_credits_and_fires_webhook(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx()
        ledger.complete_pending.return_value = _tx("COMPLETED", balance_after=50000)
        svc, webhooks = _service(ledger)
        db = AsyncMock()

        result = await svc.confirm_payment(db, "pay-1", "yookassa")

        assert result.already_processed is False
        assert result.balance_after == 50000
        db.commit.assert_awaited_once()
        webhooks.fire_and_forget.assert_called_once()
        assert webhooks.fire_and_forget.call_args.args[1] == WebhookEvent.PAYMENT_COMPLETED

    async def test_second_call_is_noop(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx("COMPLETED", balance_after=50000)
        svc, webhooks = _service(ledger)
        db = AsyncMock()

        result = await svc.confirm_payment(db, "pay-1", "yookassa")

        assert result.already_processed is True
        ledger.complete_pending.assert_not_awaited()
        db.commit.assert_not_awaited()
        webhooks.fire_and_forget.assert_not_called()

    async def test_lost_race_reports_processed(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx()
        ledger.complete_pending.return_value = None
        svc, webhooks = _service(ledger)
        db = AsyncMock()

        result = await svc.confirm_payment(db, "pay-1", "yookassa")

        assert result.already_processed is True
        db.rollback.assert_awaited()
        webhooks.fire_and_forget.assert_not_called()

    async def test_unknown_payment(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = None
        svc, _ = _service(ledger)
        with pytest.raises(PaymentNotFoundError):
            await svc.confirm_payment(AsyncMock(), "nope", "yookassa")

    async def test_non_deposit_row_is_not_a_payment(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx(type=TransactionType.PURCHASE)
        svc, _ = _service(ledger)
        with pytest.raises(PaymentNotFoundError):
            await svc.confirm_payment(AsyncMock(), "pay-1", "yookassa")


class TestFailPayment:
    async def test_cancelled(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx()
        ledger.set_terminal_status.return_value = _tx("CANCELLED")
        svc, webhooks = _service(ledger)

        result = await svc.fail_payment(AsyncMock(), "pay-1", "yookassa", "expired", cancelled=True)

        assert result.status == "CANCELLED"
        assert ledger.set_terminal_status.await_args.args[2] == "CANCELLED"
        assert webhooks.fire_and_forget.call_args.args[1] == WebhookEvent.PAYMENT_FAILED

    async def test_completed_payment_not_failed(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx("COMPLETED")
        svc, _ = _service(ledger)
        result = await svc.fail_payment(AsyncMock(), "pay-1", "yookassa", "late failure")
        assert result.already_processed is True
        ledger.set_terminal_status.assert_not_awaited()


class TestHandleWebhook:
    async def test_ignore(self) -> None:
        client = FakeClient(WebhookOutcome.ignore("payment.waiting_for_capture", "pay-1"))
        svc, _ = _service(AsyncMock(), client)
        result = await svc.handle_webhook(AsyncMock(), "yookassa", b"{}", {})
        assert result == {"received": True, "action": "ignore"}

    async def test_confirm_routes_to_settlement(self) -> None:
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx("COMPLETED")
        client = FakeClient(WebhookOutcome.confirm("pay-1", "payment.succeeded"))
        svc, _ = _service(ledger, client)

        result = await svc.handle_webhook(AsyncMock(), "yookassa", b"{}", {})

        assert result == {"received": True, "action": "confirm", "already_processed": True}
        ledger.find_by_payment.assert_awaited_once()
        assert ledger.find_by_payment.await_args.args[1:] == ("pay-1", "yookassa")


class TestTestPayment:
    async def test_disabled_outside_test_mode(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "PAYMENTS_TEST_MODE", False)
        svc, _ = _service(AsyncMock())
        with pytest.raises(PaymentProviderUnavailableError):
            await svc.test_payment(AsyncMock(), "user-1", 10000)

    async def test_success_goes_through_confirm(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "PAYMENTS_TEST_MODE", True)
        ledger = AsyncMock()
        ledger.find_by_payment.return_value = _tx(payment_method=TEST_PAYMENT_METHOD)
        ledger.complete_pending.return_value = _tx("COMPLETED", balance_after=10000, amount=10000)
        svc, _ = _service(ledger)

        resp = await svc.test_payment(AsyncMock(), "user-1", 10000)

        assert ledger.create_pending.await_args.kwargs["payment_method"] == TEST_PAYMENT_METHOD
        assert resp.status == "COMPLETED"
        assert resp.balance_cents == 10000
