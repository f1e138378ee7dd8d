"""Pydantic request/response schemas for hb_promo."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from src.hb_common.cents import cents_to_display
from src.hb_common.enums import PlanType, PromocodeType
from src.hb_promo.domain.models import (
    DiscountTier,
    GiftCertificate,
    Promocode,
    ValidationResult,
)

# ---------------------------------------------------------------------------
# Promocodes
# ---------------------------------------------------------------------------


class ValidatePromocodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    order_amount: int | None = Field(None, gt=0, description="Order total in kopecks")
    plan_type: PlanType | None = None


class PromocodeItem(BaseModel):
    id: str
    code: str
    type: str
    value: int
    min_amount: int | None
    max_uses: int | None
    max_uses_per_user: int
    valid_from: str | None
    valid_until: str | None
    plan_types: list[str]
    is_active: bool
    used_count: int
    usage_count: int | None = None

    @classmethod
    def from_domain(cls, p: Promocode, usage_count: int | None = None) -> "PromocodeItem":
        return cls(
            id=p.id,
            code=p.code,
            type=p.type,
            value=p.value,
            min_amount=p.min_amount,
            max_uses=p.max_uses,
            max_uses_per_user=p.max_uses_per_user,
            valid_from=p.valid_from.isoformat() if p.valid_from else None,
            valid_until=p.valid_until.isoformat() if p.valid_until else None,
            plan_types=p.plan_types,
            is_active=p.is_active,
            used_count=p.used_count,
            usage_count=usage_count,
        )


class ValidatePromocodeResponse(BaseModel):
    valid: bool
    error: str | None = None
    code: str | None = None
    type: str | None = None
    value: int | None = None
    discount_cents: int = 0
    discount_display: str = cents_to_display(0)

    @classmethod
    def from_result(cls, r: ValidationResult) -> "ValidatePromocodeResponse":
        if not r.valid or r.promocode is None:
            return cls(valid=False, error=r.error)
        return cls(
            valid=True,
            code=r.promocode.code,
            type=r.promocode.type,
            value=r.promocode.value,
            discount_cents=r.discount,
            discount_display=cents_to_display(r.discount),
        )


class ApplyPromocodeResponse(BaseModel):
    code: str
    type: str
    applied: bool                    # True when credited to balance right away
    discount_cents: int
    new_balance_cents: int | None = None
    message: str


class CreatePromocodeRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_-]+$")
    type: PromocodeType
    value: int = Field(..., gt=0)
    min_amount: int | None = Field(None, gt=0)
    max_uses: int | None = Field(None, gt=0)
    max_uses_per_user: int = Field(1, gt=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    plan_types: list[PlanType] = Field(default_factory=list)


class UpdatePromocodeRequest(BaseModel):
    value: int | None = Field(None, gt=0)
    min_amount: int | None = Field(None, gt=0)
    max_uses: int | None = Field(None, gt=0)
    max_uses_per_user: int | None = Field(None, gt=0)
    valid_until: datetime | None = None
    plan_types: list[PlanType] | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Gift certificates
# ---------------------------------------------------------------------------


class RedeemGiftRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class GiftRedeemResponse(BaseModel):
    amount_cents: int
    new_balance_cents: int
    message: str


class CreateGiftRequest(BaseModel):
    amount: int = Field(..., ge=10_000, description="Face value in kopecks, at least 100.00")
    message: str | None = Field(None, max_length=500)
    recipient_email: EmailStr | None = None
    expires_at: datetime | None = None


class GiftCertificateItem(BaseModel):
    id: str
    code: str
    amount: int
    balance: int
    is_active: bool
    message: str | None
    recipient_email: str | None
    redeemed_by_id: str | None
    redeemed_at: str | None
    expires_at: str | None
    created_at: str | None

    @classmethod
    def from_domain(cls, g: GiftCertificate) -> "GiftCertificateItem":
        return cls(
            id=g.id,
            code=g.code,
            amount=g.amount,
            balance=g.balance,
            is_active=g.is_active,
            message=g.message,
            recipient_email=g.recipient_email,
            redeemed_by_id=g.redeemed_by_id,
            redeemed_at=g.redeemed_at.isoformat() if g.redeemed_at else None,
            expires_at=g.expires_at.isoformat() if g.expires_at else None,
            created_at=g.created_at.isoformat() if g.created_at else None,
        )


# ---------------------------------------------------------------------------
# Referrals and volume discounts
# ---------------------------------------------------------------------------


class ApplyReferralRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=16)


class DiscountTierItem(BaseModel):
    id: str
    name: str
    min_amount: int
    discount_percent: int
    is_active: bool

    @classmethod
    def from_domain(cls, t: DiscountTier) -> "DiscountTierItem":
        return cls(
            id=t.id,
            name=t.name,
            min_amount=t.min_amount,
            discount_percent=t.discount_percent,
            is_active=t.is_active,
        )


class SaveTierRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    min_amount: int = Field(..., ge=0)
    discount_percent: int = Field(..., ge=0, le=50)
    is_active: bool = True


class UserDiscountResponse(BaseModel):
    total_spent_cents: int
    discount_percent: int
    discount_tier: str | None
    next_tier: DiscountTierItem | None
    amount_to_next_tier_cents: int | None
    tiers: list[DiscountTierItem]
