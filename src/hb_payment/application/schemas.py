"""Pydantic request/response schemas for hb_payment."""

from pydantic import BaseModel, Field

from src.hb_common.cents import cents_to_display
from src.hb_common.enums import PaymentProvider
from src.hb_payment.domain.models import ConfirmResult

# Top-up bounds in kopecks: 10.00 .. 1,000,000.00
MIN_TOPUP = 1_000
MAX_TOPUP = 100_000_000


class CreatePaymentRequest(BaseModel):
    provider: PaymentProvider
    amount: int = Field(..., ge=MIN_TOPUP, le=MAX_TOPUP, description="Top-up in kopecks")


class CreatePaymentResponse(BaseModel):
    transaction_id: int
    provider: str
    payment_id: str
    payment_url: str | None
    amount_cents: int
    amount_display: str


class SandboxPaymentRequest(BaseModel):
    amount: int = Field(..., ge=MIN_TOPUP, le=MAX_TOPUP, description="Top-up in kopecks")
    success: bool = True


class PaymentMethodItem(BaseModel):
    provider: str
    name: str
    enabled: bool
    currencies: list[str]


class PaymentMethodsResponse(BaseModel):
    methods: list[PaymentMethodItem]
    test_mode: bool


class PaymentStatusResponse(BaseModel):
    status: str
    already_processed: bool
    amount_cents: int
    amount_display: str
    balance_cents: int | None = None

    @classmethod
    def from_result(cls, r: ConfirmResult) -> "PaymentStatusResponse":
        return cls(
            status=r.status,
            already_processed=r.already_processed,
            amount_cents=r.amount,
            amount_display=cents_to_display(r.amount),
            balance_cents=r.balance_after,
        )
