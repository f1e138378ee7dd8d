"""Pydantic schemas and cursor utilities for hb_ledger API."""

import base64
import json
from typing import Any

from pydantic import BaseModel

from src.hb_common.cents import cents_to_display
from src.hb_ledger.domain.models import ReconcileResult, Transaction

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except Exception:
        return None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    balance_cents: int
    balance_display: str
    referral_balance_cents: int
    referral_balance_display: str

    @classmethod
    def from_cents(cls, user_id: str, balance: int, referral_balance: int) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            balance_cents=balance,
            balance_display=cents_to_display(balance),
            referral_balance_cents=referral_balance,
            referral_balance_display=cents_to_display(referral_balance),
        )


class TransactionItem(BaseModel):
    id: int
    user_id: str
    type: str
    status: str
    amount_cents: int
    amount_display: str
    balance_before_cents: int
    balance_after_cents: int
    balance_after_display: str
    description: str | None
    payment_method: str | None
    payment_id: str | None
    reference_type: str | None
    reference_id: str | None
    metadata: dict[str, Any]
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionItem":
        return cls(
            id=tx.id,
            user_id=tx.user_id,
            type=tx.type,
            status=tx.status,
            amount_cents=tx.amount,
            amount_display=cents_to_display(tx.amount),
            balance_before_cents=tx.balance_before,
            balance_after_cents=tx.balance_after,
            balance_after_display=cents_to_display(tx.balance_after),
            description=tx.description,
            payment_method=tx.payment_method,
            payment_id=tx.payment_id,
            reference_type=tx.reference_type,
            reference_id=tx.reference_id,
            metadata=tx.metadata,
            created_at=tx.created_at.isoformat() if tx.created_at else "",
        )


class TransactionListResponse(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool


class ReconcileResponse(BaseModel):
    user_id: str
    stored_balance_cents: int
    ledger_balance_cents: int
    drift_cents: int
    completed_count: int
    consistent: bool

    @classmethod
    def from_domain(cls, r: ReconcileResult) -> "ReconcileResponse":
        return cls(
            user_id=r.user_id,
            stored_balance_cents=r.stored_balance,
            ledger_balance_cents=r.ledger_balance,
            drift_cents=r.drift,
            completed_count=r.completed_count,
            consistent=r.is_consistent,
        )
