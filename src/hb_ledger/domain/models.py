"""Domain models for hb_ledger — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Transaction:
    id: int                          # BIGSERIAL
    user_id: str
    type: str                        # TransactionType value
    amount: int                      # kopecks, positive=credit negative=debit
    balance_before: int
    balance_after: int
    status: str                      # TransactionStatus value
    description: str | None = None
    payment_method: str | None = None
    payment_id: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_credit(self) -> bool:
        return self.amount > 0


@dataclass
class ReconcileResult:
    """Stored balance vs. the sum of COMPLETED ledger amounts for one user."""

    user_id: str
    stored_balance: int
    ledger_balance: int
    completed_count: int

    @property
    def drift(self) -> int:
        return self.stored_balance - self.ledger_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0
