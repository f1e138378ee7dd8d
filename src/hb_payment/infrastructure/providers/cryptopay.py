"""Crypto Pay (Telegram @send). Invoices are priced in RUB and paid in crypto."""

import json
import logging
from collections.abc import Mapping
from typing import Any

from config.settings import settings
from src.hb_common.cents import cents_to_decimal_str
from src.hb_common.enums import PaymentProvider
from src.hb_common.errors import InvalidSignatureError, InvalidWebhookPayloadError, PaymentProviderError
from src.hb_payment.domain.models import PaymentRequest, PaymentResult, WebhookOutcome
from src.hb_payment.domain.signatures import verify_cryptopay_signature
from src.hb_payment.infrastructure.providers.base import (
    PaymentProviderClient,
    decode_json_body,
)

logger = logging.getLogger(__name__)

CRYPTOPAY_API_URL = "https://pay.send.tg/api"
CRYPTOPAY_TESTNET_URL = "https://testnet-pay.crypt.bot/api"
INVOICE_TTL_SECONDS = 3600
ACCEPTED_ASSETS = ("USDT", "TON", "BTC", "ETH", "LTC")


class CryptoPayClient(PaymentProviderClient):
    provider = PaymentProvider.CRYPTOPAY
    display_name = "Cryptocurrency"
    currencies = ACCEPTED_ASSETS

    @property
    def base_url(self) -> str:
        return CRYPTOPAY_TESTNET_URL if settings.CRYPTOPAY_TESTNET else CRYPTOPAY_API_URL

    @property
    def is_configured(self) -> bool:
        return bool(settings.CRYPTOPAY_API_TOKEN)

    def _auth_headers(self) -> dict[str, str]:
        return {"Crypto-Pay-API-Token": settings.CRYPTOPAY_API_TOKEN}

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        """Crypto Pay wraps every answer in ``{ok, result | error}``."""
        data = await self._request("POST", f"/{method}", json_body=params)
        if not data.get("ok"):
            error = data.get("error") or {}
            name = error.get("name") if isinstance(error, dict) else str(error)
            raise PaymentProviderError(self.provider.value, name or "request rejected")
        return data.get("result")

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        self.ensure_configured()
        invoice = await self._call(
            "createInvoice",
            {
                "currency_type": "fiat",
                "fiat": request.currency,
                "accepted_assets": ",".join(ACCEPTED_ASSETS),
                "amount": cents_to_decimal_str(request.amount),
                "description": request.description[:1024],
                "paid_btn_name": "callback",
                "paid_btn_url": request.return_url,
                "payload": json.dumps({"user_id": request.user_id, **request.metadata}),
                "allow_comments": False,
                "allow_anonymous": True,
                "expires_in": INVOICE_TTL_SECONDS,
            },
        )
        if not isinstance(invoice, dict) or not invoice.get("invoice_id"):
            raise PaymentProviderError(self.provider.value, "response has no invoice id")
        return PaymentResult(
            payment_id=str(invoice["invoice_id"]),
            payment_url=invoice.get("mini_app_invoice_url") or invoice.get("bot_invoice_url")
            or invoice.get("pay_url"),
        )

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        signature = headers.get("crypto-pay-api-signature", "")
        if not verify_cryptopay_signature(body, signature, settings.CRYPTOPAY_API_TOKEN):
            raise InvalidSignatureError()

        update = decode_json_body(body)
        event = update.get("update_type")
        invoice = update.get("payload") or {}
        invoice_id = invoice.get("invoice_id") if isinstance(invoice, dict) else None
        if not invoice_id:
            raise InvalidWebhookPayloadError()
        invoice_id = str(invoice_id)

        if event == "invoice_paid":
            return WebhookOutcome.confirm(invoice_id, event)
        if event == "invoice_expired":
            return WebhookOutcome.fail(invoice_id, event, "Invoice expired", cancelled=True)
        return WebhookOutcome.ignore(event, invoice_id)
