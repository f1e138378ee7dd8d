"""Admin domain objects."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class FraudAlert:
    id: int
    user_id: str
    type: str
    severity: str
    status: str
    description: str
    ip_address: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    review_note: str | None = None
    reviewed_by_id: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None


@dataclass
class AlertDraft:
    """A heuristic hit, not yet persisted."""

    user_id: str
    type: str
    severity: str
    description: str
    ip_address: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
