"""Pydantic schemas for hb_limits."""

from dataclasses import asdict

from pydantic import BaseModel, Field

from src.hb_limits.domain.guard import SpendingLimit, SpendStats


class UpdateLimitsRequest(BaseModel):
    is_enabled: bool = True
    daily_limit: int | None = Field(None, ge=0, description="Kopecks; null or 0 disables the cap")
    monthly_limit: int | None = Field(None, ge=0)
    alert_at: int = Field(80, ge=10, le=100, description="Alert threshold, percent of a cap")


class SpendingLimitItem(BaseModel):
    is_enabled: bool
    daily_limit: int | None
    monthly_limit: int | None
    alert_at: int


class SpendStatsItem(BaseModel):
    today_spent: int
    month_spent: int
    today_remaining: int | None
    month_remaining: int | None
    alert_triggered: bool


class LimitsResponse(BaseModel):
    limit: SpendingLimitItem | None
    stats: SpendStatsItem

    @classmethod
    def build(cls, limit: SpendingLimit | None, stats: SpendStats) -> "LimitsResponse":
        return cls(
            limit=SpendingLimitItem(
                is_enabled=limit.is_enabled,
                daily_limit=limit.daily_limit,
                monthly_limit=limit.monthly_limit,
                alert_at=limit.alert_at,
            ) if limit else None,
            stats=SpendStatsItem(**asdict(stats)),
        )
