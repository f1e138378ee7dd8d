"""Pydantic request/response schemas for hb_admin."""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from src.hb_admin.domain.models import FraudAlert
from src.hb_common.enums import FraudAlertStatus
from src.hb_ledger.application.schemas import TransactionItem


class FraudScanResponse(BaseModel):
    new_alerts: int
    by_type: dict[str, int]


class FraudAlertItem(BaseModel):
    id: int
    user_id: str
    type: str
    severity: str
    status: str
    description: str
    ip_address: str | None
    metadata: dict[str, Any]
    review_note: str | None
    reviewed_by_id: str | None
    created_at: str
    resolved_at: str | None

    @classmethod
    def from_domain(cls, a: FraudAlert) -> "FraudAlertItem":
        return cls(
            id=a.id,
            user_id=a.user_id,
            type=a.type,
            severity=a.severity,
            status=a.status,
            description=a.description,
            ip_address=a.ip_address,
            metadata=a.metadata,
            review_note=a.review_note,
            reviewed_by_id=a.reviewed_by_id,
            created_at=a.created_at.isoformat() if a.created_at else "",
            resolved_at=a.resolved_at.isoformat() if a.resolved_at else None,
        )


class FraudAlertListResponse(BaseModel):
    items: list[FraudAlertItem]
    next_cursor: str | None
    has_more: bool
    by_status: dict[str, int]
    by_severity: dict[str, int]


class UpdateAlertRequest(BaseModel):
    status: FraudAlertStatus
    note: str | None = Field(None, max_length=1000)


class RefundRequest(BaseModel):
    transaction_id: int
    amount: int = Field(..., description="Refund in kopecks")
    reason: str | None = Field(None, max_length=500)


class RefundResponse(BaseModel):
    refund: TransactionItem
    message: str


class RefundListResponse(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool
    stats: dict[str, int]


class MassBonusRequest(BaseModel):
    user_ids: list[UUID] = Field(..., min_length=1, max_length=10_000)
    amount: int = Field(..., gt=0, description="Bonus per user in kopecks")
    reason: str | None = Field(None, max_length=500)


class MassBonusResponse(BaseModel):
    success: int
    failed: int
    total_amount: int


class AdjustBalanceRequest(BaseModel):
    action: Literal["add", "subtract"]
    amount: int = Field(..., gt=0, description="Kopecks")
    reason: str = Field(..., min_length=1, max_length=500)


class AuditLogResponse(BaseModel):
    items: list[dict[str, Any]]
    next_cursor: str | None
    has_more: bool
