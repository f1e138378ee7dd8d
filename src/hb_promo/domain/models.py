"""Domain models for hb_promo — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Promocode:
    id: str
    code: str                        # stored uppercase
    type: str                        # PromocodeType value
    value: int                       # percent for PERCENT, kopecks otherwise
    min_amount: int | None = None
    max_uses: int | None = None      # global cap, None = unlimited
    max_uses_per_user: int = 1
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    plan_types: list[str] = field(default_factory=list)  # empty = universal
    is_active: bool = True
    used_count: int = 0
    created_at: datetime | None = None


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    promocode: Promocode | None = None
    discount: int = 0

    @classmethod
    def reject(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


@dataclass
class GiftCertificate:
    id: str
    code: str
    amount: int
    balance: int                     # remaining value; zeroed on redemption
    is_active: bool = True
    message: str | None = None
    recipient_email: str | None = None
    redeemed_by_id: str | None = None
    redeemed_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class DiscountTier:
    id: str
    name: str
    min_amount: int
    discount_percent: int
    is_active: bool = True


@dataclass
class UserDiscount:
    user_id: str
    total_spent: int
    discount_percent: int
    discount_tier: str | None = None
    updated_at: datetime | None = None
