"""Integer arithmetic utilities for kopeck-based balances.

All amounts, balances, limits and thresholds use int (kopecks, 1/100 RUB).
No float, no Decimal.
"""


def cents_to_display(cents: int) -> str:
    """Convert kopecks to display string: 150000 -> '1,500.00 ₽', -1200 -> '-12.00 ₽'."""
    if cents < 0:
        abs_cents = -cents
        return f"-{abs_cents // 100:,}.{abs_cents % 100:02d} ₽"
    return f"{cents // 100:,}.{cents % 100:02d} ₽"


def percent_of(amount: int, percent: int) -> int:
    """Floor of amount * percent / 100 (the platform never over-discounts)."""
    if amount == 0 or percent == 0:
        return 0
    return amount * percent // 100


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def cents_to_decimal_str(cents: int) -> str:
    """Provider wire format: 150000 -> '1500.00' (no grouping, no currency sign)."""
    sign = "-" if cents < 0 else ""
    abs_cents = abs(cents)
    return f"{sign}{abs_cents // 100}.{abs_cents % 100:02d}"
