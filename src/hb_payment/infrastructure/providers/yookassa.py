"""YooKassa (Russian cards, SBP). API v3, HTTP Basic auth with shop id / secret key.

YooKassa does not sign notifications, so ``finalize`` re-reads the payment
from the API and only the status reported there is acted upon.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

import httpx

from config.settings import settings
from src.hb_common.cents import cents_to_decimal_str
from src.hb_common.enums import PaymentProvider
from src.hb_common.errors import InvalidWebhookPayloadError, PaymentProviderError
from src.hb_payment.domain.models import (
    PaymentRequest,
    PaymentResult,
    WebhookAction,
    WebhookOutcome,
)
from src.hb_payment.infrastructure.providers.base import (
    PaymentProviderClient,
    decode_json_body,
)

logger = logging.getLogger(__name__)

YOOKASSA_API_URL = "https://api.yookassa.ru/v3"

# cancellation_details.reason values that mean "abandoned", not "declined"
_CANCEL_REASONS = frozenset({
    "canceled_by_merchant",
    "expired_on_confirmation",
    "expired_on_capture",
})


class YooKassaClient(PaymentProviderClient):
    provider = PaymentProvider.YOOKASSA
    display_name = "YooKassa (Russian cards)"
    currencies = ("RUB",)

    @property
    def base_url(self) -> str:
        return YOOKASSA_API_URL

    @property
    def is_configured(self) -> bool:
        return bool(settings.YOOKASSA_SHOP_ID and settings.YOOKASSA_SECRET_KEY)

    def _basic_auth(self) -> httpx.Auth | None:
        return httpx.BasicAuth(settings.YOOKASSA_SHOP_ID, settings.YOOKASSA_SECRET_KEY)

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        self.ensure_configured()
        data = await self._request(
            "POST",
            "/payments",
            json_body={
                "amount": {
                    "value": cents_to_decimal_str(request.amount),
                    "currency": request.currency,
                },
                "capture": True,
                "confirmation": {"type": "redirect", "return_url": request.return_url},
                "description": request.description[:128],
                "metadata": {"user_id": request.user_id, **request.metadata},
            },
            headers={"Idempotence-Key": str(uuid.uuid4())},
        )
        payment_id = data.get("id")
        if not payment_id:
            raise PaymentProviderError(self.provider.value, "response has no payment id")
        confirmation = data.get("confirmation") or {}
        return PaymentResult(
            payment_id=str(payment_id),
            payment_url=confirmation.get("confirmation_url"),
            status="completed" if data.get("status") == "succeeded" else "pending",
        )

    async def get_payment(self, payment_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/payments/{payment_id}")

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        payload = decode_json_body(body)
        event = payload.get("event")
        obj = payload.get("object") or {}
        payment_id = obj.get("id") if isinstance(obj, dict) else None
        if not payment_id:
            raise InvalidWebhookPayloadError()
        payment_id = str(payment_id)

        if event == "payment.succeeded":
            return WebhookOutcome.confirm(payment_id, event)
        if event == "payment.canceled":
            return WebhookOutcome.fail(payment_id, event, "Payment cancelled", cancelled=True)
        return WebhookOutcome.ignore(event, payment_id)

    async def finalize(self, outcome: WebhookOutcome) -> WebhookOutcome:
        if outcome.action == WebhookAction.IGNORE or outcome.payment_id is None:
            return outcome
        payment = await self.get_payment(outcome.payment_id)
        status = payment.get("status")
        if status == "succeeded":
            return WebhookOutcome.confirm(outcome.payment_id, outcome.event or "payment.succeeded")
        if status == "canceled":
            details = payment.get("cancellation_details") or {}
            reason = details.get("reason") or "Payment cancelled"
            return WebhookOutcome.fail(
                outcome.payment_id,
                outcome.event or "payment.canceled",
                reason,
                cancelled=reason in _CANCEL_REASONS,
            )
        logger.warning(
            "YooKassa notification %s for %s does not match API status %s",
            outcome.event, outcome.payment_id, status,
        )
        return WebhookOutcome.ignore(outcome.event, outcome.payment_id)
