"""Pydantic request/response schemas for hb_checkout."""

from pydantic import BaseModel, Field

from src.hb_checkout.domain.pricing import PriceBreakdown
from src.hb_common.cents import cents_to_display
from src.hb_common.enums import PlanType
from src.hb_ledger.application.schemas import TransactionItem


class QuoteRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Base price in kopecks")
    promocode: str | None = Field(None, max_length=50)
    plan_type: PlanType | None = None


class CheckoutRequest(QuoteRequest):
    description: str = Field(..., min_length=1, max_length=500)


class QuoteResponse(BaseModel):
    base_amount: int
    promo_discount: int
    promocode: str | None
    volume_discount_percent: int
    volume_discount: int
    total: int
    total_display: str

    @classmethod
    def build(cls, price: PriceBreakdown, promocode: str | None) -> "QuoteResponse":
        return cls(
            base_amount=price.base_amount,
            promo_discount=price.promo_discount,
            promocode=promocode,
            volume_discount_percent=price.volume_percent,
            volume_discount=price.volume_discount,
            total=price.total,
            total_display=cents_to_display(price.total),
        )


class PurchaseResponse(BaseModel):
    quote: QuoteResponse
    transaction: TransactionItem
    balance_cents: int
    referral_bonus_paid: bool
