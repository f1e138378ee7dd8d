"""Spending limit math — pure functions, no I/O."""

from dataclasses import dataclass

from src.hb_common.cents import percent_of

DEFAULT_ALERT_AT = 80


@dataclass
class SpendingLimit:
    user_id: str
    daily_limit: int | None = None      # kopecks, None = no cap
    monthly_limit: int | None = None
    alert_at: int = DEFAULT_ALERT_AT    # percent of a cap that triggers the alert
    is_enabled: bool = False


@dataclass
class SpendStats:
    today_spent: int
    month_spent: int
    today_remaining: int | None
    month_remaining: int | None
    alert_triggered: bool


@dataclass
class LimitBreach:
    period: str          # "daily" | "monthly"
    limit: int
    spent: int


def evaluate_spend(
    limit: SpendingLimit | None, today_spent: int, month_spent: int, amount: int
) -> LimitBreach | None:
    """Return the first cap that ``amount`` would push past, daily before monthly."""
    if limit is None or not limit.is_enabled:
        return None
    if limit.daily_limit is not None and today_spent + amount > limit.daily_limit:
        return LimitBreach("daily", limit.daily_limit, today_spent)
    if limit.monthly_limit is not None and month_spent + amount > limit.monthly_limit:
        return LimitBreach("monthly", limit.monthly_limit, month_spent)
    return None


def spend_stats(limit: SpendingLimit | None, today_spent: int, month_spent: int) -> SpendStats:
    daily = limit.daily_limit if limit else None
    monthly = limit.monthly_limit if limit else None
    alert_at = limit.alert_at if limit else DEFAULT_ALERT_AT

    alert = False
    if limit is not None and limit.is_enabled:
        if daily and today_spent >= percent_of(daily, alert_at):
            alert = True
        if monthly and month_spent >= percent_of(monthly, alert_at):
            alert = True

    return SpendStats(
        today_spent=today_spent,
        month_spent=month_spent,
        today_remaining=max(0, daily - today_spent) if daily is not None else None,
        month_remaining=max(0, monthly - month_spent) if monthly is not None else None,
        alert_triggered=alert,
    )
