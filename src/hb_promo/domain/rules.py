"""Pure promotion rules — no I/O, unit-testable in isolation.

All money values are kopecks; percent math floors (never over-discounts).
"""

from datetime import datetime

from src.hb_common.cents import cents_to_display, clamp, percent_of
from src.hb_common.enums import PromocodeType
from src.hb_promo.domain.models import DiscountTier, GiftCertificate, Promocode, ValidationResult

REFERRAL_BONUS_PERCENT = 10
REFERRAL_BONUS_MIN = 5_000      # 50.00
REFERRAL_BONUS_MAX = 50_000     # 500.00
MAX_TIER_PERCENT = 50


def promocode_discount(promocode: Promocode, order_amount: int | None) -> int:
    """FIXED -> min(value, order); PERCENT -> floor(order * value / 100); BALANCE -> value."""
    if promocode.type == PromocodeType.BALANCE:
        return promocode.value
    if not order_amount:
        return 0
    if promocode.type == PromocodeType.FIXED:
        return min(promocode.value, order_amount)
    if promocode.type == PromocodeType.PERCENT:
        return percent_of(order_amount, promocode.value)
    return 0


def evaluate_promocode(
    promocode: Promocode | None,
    user_usage_count: int,
    now: datetime,
    order_amount: int | None = None,
    plan_type: str | None = None,
) -> ValidationResult:
    """Run the validation chain; the first failing check wins.

    Order: existence, active flag, validity window, global cap, per-user cap,
    order minimum, plan applicability.
    """
    if promocode is None:
        return ValidationResult.reject("Promocode not found")
    if not promocode.is_active:
        return ValidationResult.reject("Promocode is inactive")
    if promocode.valid_from is not None and promocode.valid_from > now:
        return ValidationResult.reject("Promocode is not active yet")
    if promocode.valid_until is not None and promocode.valid_until < now:
        return ValidationResult.reject("Promocode has expired")
    if promocode.max_uses is not None and promocode.used_count >= promocode.max_uses:
        return ValidationResult.reject("Promocode is no longer available")
    if user_usage_count >= promocode.max_uses_per_user:
        return ValidationResult.reject("You have already used this promocode")
    if promocode.min_amount and order_amount and order_amount < promocode.min_amount:
        return ValidationResult.reject(
            f"Minimum order amount: {cents_to_display(promocode.min_amount)}"
        )
    if promocode.plan_types and plan_type and plan_type not in promocode.plan_types:
        return ValidationResult.reject("Promocode does not apply to this service type")

    return ValidationResult(
        valid=True,
        promocode=promocode,
        discount=promocode_discount(promocode, order_amount),
    )


def check_gift_redeemable(
    certificate: GiftCertificate, user_id: str, now: datetime
) -> str | None:
    """Return the name of the failed precondition, or None when redeemable.

    Names: "inactive", "redeemed", "expired", "owned".
    """
    if not certificate.is_active:
        return "inactive"
    if certificate.balance <= 0:
        return "redeemed"
    if certificate.expires_at is not None and certificate.expires_at < now:
        return "expired"
    if certificate.redeemed_by_id is not None and certificate.redeemed_by_id != user_id:
        return "owned"
    return None


def referral_bonus(order_amount: int) -> int:
    """10% of the order, clamped to [50.00, 500.00]."""
    return clamp(
        percent_of(order_amount, REFERRAL_BONUS_PERCENT),
        REFERRAL_BONUS_MIN,
        REFERRAL_BONUS_MAX,
    )


def pick_tier(tiers: list[DiscountTier], total_spent: int) -> DiscountTier | None:
    """Highest active tier whose threshold is reached."""
    eligible = [t for t in tiers if t.is_active and t.min_amount <= total_spent]
    if not eligible:
        return None
    return max(eligible, key=lambda t: t.min_amount)


def next_tier(tiers: list[DiscountTier], total_spent: int) -> DiscountTier | None:
    """Lowest active tier still above the current spend."""
    upcoming = [t for t in tiers if t.is_active and t.min_amount > total_spent]
    if not upcoming:
        return None
    return min(upcoming, key=lambda t: t.min_amount)
