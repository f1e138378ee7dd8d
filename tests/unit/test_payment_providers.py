"""Tests for webhook signatures and provider clients (httpx.MockTransport)."""

import hashlib
import hmac
import json
import time

import httpx
import pytest

from config.settings import settings
from src.hb_common.errors import (
    InvalidSignatureError,
    InvalidWebhookPayloadError,
    PaymentProviderError,
    PaymentProviderUnavailableError,
)
from src.hb_payment.domain.models import PaymentRequest, WebhookAction
from src.hb_payment.domain.signatures import (
    parse_stripe_header,
    verify_cryptopay_signature,
    verify_stripe_signature,
)
from src.hb_payment.infrastructure.providers.cryptopay import CryptoPayClient
from src.hb_payment.infrastructure.providers.registry import default_providers, resolve_provider
from src.hb_payment.infrastructure.providers.stripe import StripeClient
from src.hb_payment.infrastructure.providers.yookassa import YooKassaClient

STRIPE_SECRET = "whsec_test"
CRYPTO_TOKEN = "12345:AAtoken"


def _stripe_header(body: bytes, secret: str = STRIPE_SECRET, ts: int | None = None) -> str:
    ts = int(time.time()) if ts is None else ts
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def _crypto_signature(body: bytes, token: str = CRYPTO_TOKEN) -> str:
    key = hashlib.sha256(token.encode()).digest()
    return hmac.new(key, body, hashlib.sha256).hexdigest()


def _request(amount: int = 150000) -> PaymentRequest:
    return PaymentRequest(
        user_id="user-1",
        amount=amount,
        description="Balance top-up",
        return_url="https://example.test/ok",
        cancel_url="https://example.test/cancel",
    )


class TestStripeSignature:
    def test_parse_header(self) -> None:
        assert parse_stripe_header("t=1,v1=a,v0=x,v1=b") == ("1", ["a", "b"])

    def test_valid(self) -> None:
        body = b'{"id": "evt_1"}'
        assert verify_stripe_signature(body, _stripe_header(body), STRIPE_SECRET) is True

    def test_tampered_body(self) -> None:
        header = _stripe_header(b'{"id": "evt_1"}')
        assert verify_stripe_signature(b'{"id": "evt_2"}', header, STRIPE_SECRET) is False

    def test_outside_tolerance(self) -> None:
        body = b"{}"
        header = _stripe_header(body, ts=1_000_000)
        assert verify_stripe_signature(body, header, STRIPE_SECRET, now=1_000_301) is False
        assert verify_stripe_signature(body, header, STRIPE_SECRET, now=1_000_299) is True

    def test_malformed_header(self) -> None:
        assert verify_stripe_signature(b"{}", "garbage", STRIPE_SECRET) is False
        assert verify_stripe_signature(b"{}", "t=abc,v1=00", STRIPE_SECRET) is False
        assert verify_stripe_signature(b"{}", "", STRIPE_SECRET) is False

    def test_non_ascii_signature_rejected(self) -> None:
        header = f"t={int(time.time())},v1=\u00e9"
        assert verify_stripe_signature(b"{}", header, STRIPE_SECRET) is False


class TestCryptoPaySignature:
    def test_valid(self) -> None:
        body = b'{"update_type": "invoice_paid"}'
        assert verify_cryptopay_signature(body, _crypto_signature(body), CRYPTO_TOKEN) is True

    def test_uppercase_hex_accepted(self) -> None:
        body = b"{}"
        assert verify_cryptopay_signature(body, _crypto_signature(body).upper(), CRYPTO_TOKEN)

    def test_wrong_token(self) -> None:
        body = b"{}"
        assert verify_cryptopay_signature(body, _crypto_signature(body, "other"), CRYPTO_TOKEN) is False

    def test_non_ascii_signature_rejected(self) -> None:
        assert verify_cryptopay_signature(b"{}", "\u00e9", CRYPTO_TOKEN) is False


class TestRegistry:
    def test_resolve_known(self) -> None:
        providers = default_providers()
        assert isinstance(resolve_provider(providers, "stripe"), StripeClient)

    def test_resolve_unknown(self) -> None:
        with pytest.raises(PaymentProviderUnavailableError):
            resolve_provider(default_providers(), "bitcoin-atm")


class TestStripeClient:
    @pytest.fixture(autouse=True)
    def _configure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test")
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", STRIPE_SECRET)

    async def test_create_session(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"id": "cs_123", "url": "https://stripe.test/pay"})

        client = StripeClient(transport=httpx.MockTransport(handler))
        result = await client.create_payment(_request())

        assert result.payment_id == "cs_123"
        assert result.payment_url == "https://stripe.test/pay"
        assert seen["auth"] == "Bearer sk_test"
        assert "unit_amount%5D=150000" in seen["body"]

    async def test_provider_error_surfaces(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid currency"}})

        client = StripeClient(transport=httpx.MockTransport(handler))
        with pytest.raises(PaymentProviderError) as exc:
            await client.create_payment(_request())
        assert "Invalid currency" in exc.value.message

    def _event(self, event: str, payment_status: str = "paid") -> bytes:
        return json.dumps({
            "type": event,
            "data": {"object": {"id": "cs_123", "payment_status": payment_status}},
        }).encode()

    def test_paid_session_confirms(self) -> None:
        body = self._event("checkout.session.completed")
        outcome = StripeClient().parse_webhook(body, {"stripe-signature": _stripe_header(body)})
        assert outcome.action == WebhookAction.CONFIRM
        assert outcome.payment_id == "cs_123"

    def test_unpaid_session_ignored(self) -> None:
        body = self._event("checkout.session.completed", "unpaid")
        outcome = StripeClient().parse_webhook(body, {"stripe-signature": _stripe_header(body)})
        assert outcome.action == WebhookAction.IGNORE

    def test_expired_session_cancels(self) -> None:
        body = self._event("checkout.session.expired")
        outcome = StripeClient().parse_webhook(body, {"stripe-signature": _stripe_header(body)})
        assert outcome.action == WebhookAction.FAIL
        assert outcome.cancelled is True

    def test_bad_signature(self) -> None:
        body = self._event("checkout.session.completed")
        with pytest.raises(InvalidSignatureError):
            StripeClient().parse_webhook(body, {"stripe-signature": _stripe_header(body, "nope")})

    def test_missing_webhook_secret_rejects(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "")
        body = self._event("checkout.session.completed")
        with pytest.raises(InvalidSignatureError):
            StripeClient().parse_webhook(body, {"stripe-signature": _stripe_header(body)})


class TestYooKassaClient:
    @pytest.fixture(autouse=True)
    def _configure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "YOOKASSA_SHOP_ID", "shop")
        monkeypatch.setattr(settings, "YOOKASSA_SECRET_KEY", "secret")

    async def test_create_payment_sends_decimal_amount(self) -> None:
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["json"] = json.loads(request.content)
            seen["idempotence"] = request.headers.get("idempotence-key")
            return httpx.Response(200, json={
                "id": "2c5d-yk",
                "status": "pending",
                "confirmation": {"confirmation_url": "https://yoomoney.test/pay"},
            })

        client = YooKassaClient(transport=httpx.MockTransport(handler))
        result = await client.create_payment(_request(150050))

        assert result.payment_id == "2c5d-yk"
        assert seen["json"]["amount"] == {"value": "1500.50", "currency": "RUB"}  # type: ignore[index]
        assert seen["idempotence"]

    async def test_finalize_trusts_api_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "yk-1", "status": "pending"})

        client = YooKassaClient(transport=httpx.MockTransport(handler))
        body = json.dumps({"event": "payment.succeeded", "object": {"id": "yk-1"}}).encode()
        outcome = await client.finalize(client.parse_webhook(body, {}))
        assert outcome.action == WebhookAction.IGNORE

    async def test_finalize_cancel_reason(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "id": "yk-1",
                "status": "canceled",
                "cancellation_details": {"reason": "expired_on_confirmation"},
            })

        client = YooKassaClient(transport=httpx.MockTransport(handler))
        body = json.dumps({"event": "payment.canceled", "object": {"id": "yk-1"}}).encode()
        outcome = await client.finalize(client.parse_webhook(body, {}))
        assert outcome.action == WebhookAction.FAIL
        assert outcome.cancelled is True
        assert outcome.reason == "expired_on_confirmation"

    def test_missing_object_id(self) -> None:
        with pytest.raises(InvalidWebhookPayloadError):
            YooKassaClient().parse_webhook(b'{"event": "payment.succeeded"}', {})

    def test_non_json_body(self) -> None:
        with pytest.raises(InvalidWebhookPayloadError):
            YooKassaClient().parse_webhook(b"not json", {})


class TestCryptoPayClient:
    @pytest.fixture(autouse=True)
    def _configure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CRYPTOPAY_API_TOKEN", CRYPTO_TOKEN)

    async def test_create_invoice(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["crypto-pay-api-token"] == CRYPTO_TOKEN
            return httpx.Response(200, json={
                "ok": True,
                "result": {"invoice_id": 77, "bot_invoice_url": "https://t.me/send?start=x"},
            })

        client = CryptoPayClient(transport=httpx.MockTransport(handler))
        result = await client.create_payment(_request())
        assert result.payment_id == "77"
        assert result.payment_url == "https://t.me/send?start=x"

    async def test_not_ok_answer(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "error": {"name": "UNAUTHORIZED"}})

        client = CryptoPayClient(transport=httpx.MockTransport(handler))
        with pytest.raises(PaymentProviderError):
            await client.create_payment(_request())

    def test_paid_invoice(self) -> None:
        body = json.dumps({"update_type": "invoice_paid", "payload": {"invoice_id": 77}}).encode()
        outcome = CryptoPayClient().parse_webhook(
            body, {"crypto-pay-api-signature": _crypto_signature(body)}
        )
        assert outcome.action == WebhookAction.CONFIRM
        assert outcome.payment_id == "77"

    def test_unsigned_rejected(self) -> None:
        body = json.dumps({"update_type": "invoice_paid", "payload": {"invoice_id": 77}}).encode()
        with pytest.raises(InvalidSignatureError):
            CryptoPayClient().parse_webhook(body, {})
