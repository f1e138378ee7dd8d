"""Pydantic request/response schemas for hb_withdrawal."""

from typing import Any

from pydantic import BaseModel, Field

from src.hb_common.cents import cents_to_display
from src.hb_common.enums import WithdrawalMethod, WithdrawalStatus
from src.hb_withdrawal.domain.models import MIN_WITHDRAWAL, WithdrawalRequest


class CreateWithdrawalRequest(BaseModel):
    amount: int = Field(..., ge=MIN_WITHDRAWAL, description="Kopecks, minimum 100.00")
    method: WithdrawalMethod
    details: dict[str, Any] = Field(..., min_length=1, description="Card number, wallet, ...")


class UpdateWithdrawalRequest(BaseModel):
    status: WithdrawalStatus
    admin_note: str | None = Field(None, max_length=1000)


class WithdrawalItem(BaseModel):
    id: str
    user_id: str
    amount_cents: int
    amount_display: str
    method: str
    details: dict[str, Any]
    status: str
    admin_note: str | None
    processed_at: str | None
    created_at: str

    @classmethod
    def from_domain(cls, w: WithdrawalRequest) -> "WithdrawalItem":
        return cls(
            id=w.id,
            user_id=w.user_id,
            amount_cents=w.amount,
            amount_display=cents_to_display(w.amount),
            method=w.method,
            details=w.details,
            status=w.status,
            admin_note=w.admin_note,
            processed_at=w.processed_at.isoformat() if w.processed_at else None,
            created_at=w.created_at.isoformat() if w.created_at else "",
        )


class WithdrawalBalance(BaseModel):
    current: int
    pending: int
    available: int


class WithdrawalListResponse(BaseModel):
    items: list[WithdrawalItem]
    balance: WithdrawalBalance


class AdminWithdrawalListResponse(BaseModel):
    items: list[WithdrawalItem]


class AdminWithdrawalDetailResponse(BaseModel):
    request: WithdrawalItem
    user_balance: int
    history: list[WithdrawalItem]
