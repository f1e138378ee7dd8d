"""Provider lookup by name."""

from src.hb_common.enums import PaymentProvider
from src.hb_common.errors import PaymentProviderUnavailableError
from src.hb_payment.infrastructure.providers.base import PaymentProviderClient
from src.hb_payment.infrastructure.providers.cryptopay import CryptoPayClient
from src.hb_payment.infrastructure.providers.paypal import PayPalClient
from src.hb_payment.infrastructure.providers.stripe import StripeClient
from src.hb_payment.infrastructure.providers.yookassa import YooKassaClient


def default_providers() -> dict[PaymentProvider, PaymentProviderClient]:
    clients: list[PaymentProviderClient] = [
        YooKassaClient(),
        StripeClient(),
        PayPalClient(),
        CryptoPayClient(),
    ]
    return {client.provider: client for client in clients}


def resolve_provider(
    providers: dict[PaymentProvider, PaymentProviderClient], name: str
) -> PaymentProviderClient:
    try:
        return providers[PaymentProvider(name)]
    except (ValueError, KeyError):
        raise PaymentProviderUnavailableError(name) from None
