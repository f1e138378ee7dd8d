"""PayPal Orders v2. OAuth2 client-credentials token, cached per process.

PayPal callbacks are not verified by signature here. ``finalize`` reads the
order back from the API (capturing it when the buyer has approved) and acts
on that status only.
"""

import logging
import time
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

PAYPAL_LIVE_URL = "https://api-m.paypal.com"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"

# Refresh the access token this long before PayPal says it expires
_TOKEN_REFRESH_MARGIN_SECONDS = 60

_DECLINE_EVENTS = frozenset({"PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"})


def _related_order_id(resource: dict[str, Any]) -> str | None:
    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    order_id = related.get("order_id")
    return str(order_id) if order_id else None


class PayPalClient(PaymentProviderClient):
    provider = PaymentProvider.PAYPAL
    display_name = "PayPal"
    currencies = ("RUB",)

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(transport)
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def base_url(self) -> str:
        return PAYPAL_LIVE_URL if settings.PAYPAL_MODE == "live" else PAYPAL_SANDBOX_URL

    @property
    def is_configured(self) -> bool:
        return bool(settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET)

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        data = await self._request(
            "POST",
            "/v1/oauth2/token",
            form={"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
        )
        token = data.get("access_token")
        if not token:
            raise PaymentProviderError(self.provider.value, "no access token in response")
        expires_in = int(data.get("expires_in", 0))
        self._token = str(token)
        self._token_expires_at = (
            time.monotonic() + max(expires_in - _TOKEN_REFRESH_MARGIN_SECONDS, 0)
        )
        return self._token

    async def _api(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        token = await self._access_token()
        return await self._request(
            method,
            path,
            json_body=json_body,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        self.ensure_configured()
        order = await self._api(
            "POST",
            "/v2/checkout/orders",
            {
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {
                            "currency_code": request.currency,
                            "value": cents_to_decimal_str(request.amount),
                        },
                        "description": request.description[:127],
                        "custom_id": request.user_id,
                    }
                ],
                "application_context": {
                    "brand_name": settings.APP_NAME,
                    "user_action": "PAY_NOW",
                    "return_url": request.return_url,
                    "cancel_url": request.cancel_url,
                },
            },
        )
        order_id = order.get("id")
        if not order_id:
            raise PaymentProviderError(self.provider.value, "response has no order id")
        approve = next(
            (link.get("href") for link in order.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        return PaymentResult(payment_id=str(order_id), payment_url=approve)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self._api("GET", f"/v2/checkout/orders/{order_id}")

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        return await self._api("POST", f"/v2/checkout/orders/{order_id}/capture", {})

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        payload = decode_json_body(body)
        event = payload.get("event_type")
        resource = payload.get("resource")
        if not isinstance(resource, dict):
            raise InvalidWebhookPayloadError()

        if event == "CHECKOUT.ORDER.APPROVED":
            order_id = resource.get("id")
            if not order_id:
                raise InvalidWebhookPayloadError()
            return WebhookOutcome.confirm(str(order_id), event)
        if event == "PAYMENT.CAPTURE.COMPLETED" or event in _DECLINE_EVENTS:
            order_id = _related_order_id(resource)
            if order_id is None:
                raise InvalidWebhookPayloadError()
            if event in _DECLINE_EVENTS:
                return WebhookOutcome.fail(order_id, event, "Payment declined")
            return WebhookOutcome.confirm(order_id, event)
        return WebhookOutcome.ignore(event)

    async def finalize(self, outcome: WebhookOutcome) -> WebhookOutcome:
        if outcome.action == WebhookAction.IGNORE or outcome.payment_id is None:
            return outcome
        order_id = outcome.payment_id
        order = await self.get_order(order_id)
        status = order.get("status")

        if outcome.action == WebhookAction.FAIL:
            if status == "COMPLETED":
                logger.warning("PayPal %s for order %s, but order is COMPLETED", outcome.event, order_id)
                return WebhookOutcome.ignore(outcome.event, order_id)
            return outcome

        if status == "APPROVED":
            order = await self.capture_order(order_id)
            status = order.get("status")
            logger.info("PayPal order %s captured: status=%s", order_id, status)
        if status == "COMPLETED":
            return WebhookOutcome.confirm(order_id, outcome.event or "PAYMENT.CAPTURE.COMPLETED")
        logger.warning("PayPal %s for order %s, order status is %s", outcome.event, order_id, status)
        return WebhookOutcome.ignore(outcome.event, order_id)
