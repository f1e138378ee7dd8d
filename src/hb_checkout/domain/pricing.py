"""Price computation for a purchase — pure, no I/O."""

from dataclasses import dataclass

from src.hb_common.cents import percent_of


@dataclass(frozen=True)
class PriceBreakdown:
    base_amount: int
    promo_discount: int
    volume_percent: int
    volume_discount: int

    @property
    def total(self) -> int:
        return self.base_amount - self.promo_discount - self.volume_discount


def compute_price(base_amount: int, promo_discount: int, volume_percent: int) -> PriceBreakdown:
    """Promocode first, then the volume discount on what remains; never below zero."""
    promo = min(max(promo_discount, 0), base_amount)
    volume = percent_of(base_amount - promo, volume_percent)
    return PriceBreakdown(
        base_amount=base_amount,
        promo_discount=promo,
        volume_percent=volume_percent,
        volume_discount=volume,
    )
