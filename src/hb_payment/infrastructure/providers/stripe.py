"""Stripe Checkout Sessions. Form-encoded API, bearer secret key.

Pending ledger rows are keyed by the Checkout Session id, so only session
events are mapped; payment_intent events carry a different id and are ignored.
"""

import logging
from collections.abc import Mapping

from config.settings import settings
from src.hb_common.enums import PaymentProvider
from src.hb_common.errors import InvalidSignatureError, InvalidWebhookPayloadError, PaymentProviderError
from src.hb_payment.domain.models import PaymentRequest, PaymentResult, WebhookOutcome
from src.hb_payment.domain.signatures import verify_stripe_signature
from src.hb_payment.infrastructure.providers.base import (
    PaymentProviderClient,
    decode_json_body,
)

logger = logging.getLogger(__name__)

STRIPE_API_URL = "https://api.stripe.com/v1"


class StripeClient(PaymentProviderClient):
    provider = PaymentProvider.STRIPE
    display_name = "Stripe (international cards)"
    currencies = ("RUB",)

    @property
    def base_url(self) -> str:
        return STRIPE_API_URL

    @property
    def is_configured(self) -> bool:
        return bool(settings.STRIPE_SECRET_KEY)

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"}

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        self.ensure_configured()
        form: dict[str, str | int] = {
            "mode": "payment",
            "success_url": request.return_url,
            "cancel_url": request.cancel_url,
            "client_reference_id": request.user_id,
            "line_items[0][price_data][currency]": request.currency.lower(),
            "line_items[0][price_data][product_data][name]": request.description,
            # Stripe amounts are already in minor units, like our kopecks
            "line_items[0][price_data][unit_amount]": request.amount,
            "line_items[0][quantity]": 1,
            "metadata[user_id]": request.user_id,
        }
        for key, value in request.metadata.items():
            form[f"metadata[{key}]"] = str(value)

        data = await self._request("POST", "/checkout/sessions", form=form)
        session_id = data.get("id")
        if not session_id:
            raise PaymentProviderError(self.provider.value, "response has no session id")
        return PaymentResult(payment_id=str(session_id), payment_url=data.get("url"))

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
            raise InvalidSignatureError()
        if not verify_stripe_signature(body, headers.get("stripe-signature", ""), secret):
            raise InvalidSignatureError()

        payload = decode_json_body(body)
        event = payload.get("type")
        obj = (payload.get("data") or {}).get("object") or {}
        session_id = obj.get("id") if isinstance(obj, dict) else None
        if not session_id:
            raise InvalidWebhookPayloadError()
        session_id = str(session_id)

        if event in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            # Delayed payment methods complete the session before the money arrives
            if obj.get("payment_status") == "paid":
                return WebhookOutcome.confirm(session_id, event)
            return WebhookOutcome.ignore(event, session_id)
        if event == "checkout.session.expired":
            return WebhookOutcome.fail(session_id, event, "Session expired", cancelled=True)
        if event == "checkout.session.async_payment_failed":
            return WebhookOutcome.fail(session_id, event, "Payment failed")
        return WebhookOutcome.ignore(event, session_id)
