"""Withdrawal request model and its status machine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.hb_common.enums import WithdrawalStatus

# Kopecks: 100.00
MIN_WITHDRAWAL = 10_000
MAX_ACTIVE_REQUESTS = 3

ACTIVE_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING)

_TRANSITIONS: dict[WithdrawalStatus, frozenset[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: frozenset({
        WithdrawalStatus.PROCESSING,
        WithdrawalStatus.COMPLETED,
        WithdrawalStatus.REJECTED,
    }),
    WithdrawalStatus.PROCESSING: frozenset({
        WithdrawalStatus.COMPLETED,
        WithdrawalStatus.REJECTED,
    }),
    WithdrawalStatus.COMPLETED: frozenset(),
    WithdrawalStatus.REJECTED: frozenset(),
}


@dataclass
class WithdrawalRequest:
    id: str
    user_id: str
    amount: int
    method: str
    details: dict[str, Any] = field(default_factory=dict)
    status: str = WithdrawalStatus.PENDING.value
    admin_note: str | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


def can_transition(current: str, target: str) -> bool:
    return WithdrawalStatus(target) in _TRANSITIONS[WithdrawalStatus(current)]


def available_for_withdrawal(balance: int, pending: int, bonus_total: int) -> int:
    """Bonus credits and amounts already requested are not withdrawable."""
    return max(0, balance - pending - bonus_total)
