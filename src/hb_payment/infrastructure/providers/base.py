"""Common plumbing for payment provider clients.

A client never writes to the database. It talks to one provider over httpx and
turns that provider's callbacks into a ``WebhookOutcome``; PaymentService owns
the ledger side.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx

from config.settings import settings
from src.hb_common.enums import PaymentProvider
from src.hb_common.errors import (
    InvalidWebhookPayloadError,
    PaymentProviderError,
    PaymentProviderUnavailableError,
)
from src.hb_payment.domain.models import PaymentRequest, PaymentResult, WebhookOutcome

logger = logging.getLogger(__name__)


class PaymentProviderClient(ABC):
    provider: PaymentProvider
    display_name: str
    currencies: tuple[str, ...] = ("RUB",)

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        # Tests inject httpx.MockTransport here
        self._transport = transport

    @property
    @abstractmethod
    def base_url(self) -> str: ...

    @property
    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def create_payment(self, request: PaymentRequest) -> PaymentResult: ...

    @abstractmethod
    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        """Authenticate and decode a callback. Raises InvalidSignatureError /
        InvalidWebhookPayloadError."""

    async def finalize(self, outcome: WebhookOutcome) -> WebhookOutcome:
        """Last step before the outcome touches the ledger.

        Providers that do not sign callbacks override this to re-read the
        payment from their API, so a forged body cannot credit a balance.
        """
        return outcome

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise PaymentProviderUnavailableError(self.provider.value)

    def _auth_headers(self) -> dict[str, str]:
        return {}

    def _basic_auth(self) -> httpx.Auth | None:
        return None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        form: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Transport failures, non-2xx answers and non-JSON bodies all surface as
        PaymentProviderError (HTTP 502 to our caller).
        """
        name = self.provider.value
        request_headers = {**self._auth_headers(), **(headers or {})}
        extra: dict[str, Any] = {}
        request_auth = auth or self._basic_auth()
        if request_auth is not None:
            extra["auth"] = request_auth
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    json=json_body,
                    data=form,
                    headers=request_headers,
                    params=params,
                    **extra,
                )
        except httpx.HTTPError as exc:
            logger.warning("%s %s %s transport error: %s", name, method, path, exc)
            raise PaymentProviderError(name, "provider is unreachable") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            detail = self._error_detail(data) or f"HTTP {response.status_code}"
            logger.warning(
                "%s %s %s failed: status=%d detail=%s",
                name, method, path, response.status_code, detail,
            )
            raise PaymentProviderError(name, detail)
        if not isinstance(data, dict):
            raise PaymentProviderError(name, "unexpected response format")
        return data

    def _error_detail(self, data: Any) -> str | None:
        if isinstance(data, dict):
            for key in ("description", "message", "error_description"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
            error = data.get("error")
            if isinstance(error, dict):
                return error.get("message") or error.get("name")
            if isinstance(error, str):
                return error
        return None


def decode_json_body(body: bytes) -> dict[str, Any]:
    """Parse a callback body; anything but a JSON object is a malformed payload."""
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise InvalidWebhookPayloadError() from exc
    if not isinstance(payload, dict):
        raise InvalidWebhookPayloadError()
    return payload
