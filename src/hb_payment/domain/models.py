"""Payment domain objects shared by the provider clients and PaymentService."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.hb_ledger.domain.models import Transaction


class WebhookAction(str, Enum):
    CONFIRM = "confirm"
    FAIL = "fail"
    IGNORE = "ignore"


@dataclass
class PaymentRequest:
    """A top-up to be invoiced by a provider. Amount is in kopecks."""

    user_id: str
    amount: int
    description: str
    return_url: str
    cancel_url: str
    currency: str = "RUB"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentResult:
    payment_id: str
    payment_url: str | None
    status: str = "pending"


@dataclass
class WebhookOutcome:
    """What a provider callback asks us to do with one of our payments.

    ``event`` keeps the provider's own event name for logging and for the
    follow-up call some providers need before the outcome can be trusted.
    """

    action: WebhookAction
    payment_id: str | None = None
    reason: str | None = None
    cancelled: bool = False
    event: str | None = None

    @classmethod
    def confirm(cls, payment_id: str, event: str) -> "WebhookOutcome":
        return cls(WebhookAction.CONFIRM, payment_id, event=event)

    @classmethod
    def fail(
        cls, payment_id: str, event: str, reason: str, cancelled: bool = False
    ) -> "WebhookOutcome":
        return cls(WebhookAction.FAIL, payment_id, reason=reason, cancelled=cancelled, event=event)

    @classmethod
    def ignore(cls, event: str | None, payment_id: str | None = None) -> "WebhookOutcome":
        return cls(WebhookAction.IGNORE, payment_id, event=event)


@dataclass
class ConfirmResult:
    """Result of confirming (or failing) a provider payment.

    ``already_processed`` is True when the payment had left PENDING before this
    call; no balance change happened in that case.
    """

    user_id: str
    amount: int
    status: str
    already_processed: bool
    transaction: Transaction | None = None

    @property
    def balance_after(self) -> int | None:
        return self.transaction.balance_after if self.transaction else None
