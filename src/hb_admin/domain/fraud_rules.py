"""Fraud heuristics: thresholds, windows and alert construction.

Pure functions over rows the repository already selected; the SQL does the
windowing and deduplication, these decide severity and wording.
"""

from datetime import datetime, timedelta

from src.hb_admin.domain.models import AlertDraft
from src.hb_common.cents import cents_to_display
from src.hb_common.enums import FraudAlertType, FraudSeverity

# Velocity: more than N transactions of any kind in the window
VELOCITY_WINDOW = timedelta(hours=24)
VELOCITY_MIN_COUNT = 10
VELOCITY_HIGH_COUNT = 20
VELOCITY_DEDUP = timedelta(days=7)

# Large payment: one COMPLETED DEPOSIT of at least this many kopecks
LARGE_DEPOSIT_WINDOW = timedelta(hours=24)
LARGE_DEPOSIT_MIN = 5_000_000
LARGE_DEPOSIT_HIGH = 10_000_000
LARGE_DEPOSIT_DEDUP = timedelta(days=7)

# Shared IP: distinct accounts seen logging in from one address
SHARED_IP_WINDOW = timedelta(days=30)
SHARED_IP_MIN_USERS = 3
SHARED_IP_HIGH_USERS = 5
SHARED_IP_DEDUP = timedelta(days=30)

# Unusual activity: dormant account suddenly tops up
DORMANT_AFTER = timedelta(days=30)
DORMANT_DEPOSIT_WINDOW = timedelta(days=7)
DORMANT_DEPOSIT_MIN = 500_000
DORMANT_DEDUP = timedelta(days=30)


def _severity(high: bool) -> str:
    return FraudSeverity.HIGH.value if high else FraudSeverity.MEDIUM.value


def velocity_alert(user_id: str, tx_count: int, total_amount: int) -> AlertDraft | None:
    if tx_count <= VELOCITY_MIN_COUNT:
        return None
    return AlertDraft(
        user_id=user_id,
        type=FraudAlertType.VELOCITY.value,
        severity=_severity(tx_count > VELOCITY_HIGH_COUNT),
        description=f"{tx_count} transactions in the last 24 hours",
        metadata={"transaction_count": tx_count, "total_amount": total_amount},
    )


def large_deposit_alert(
    user_id: str, transaction_id: int, amount: int, payment_method: str | None
) -> AlertDraft | None:
    if amount < LARGE_DEPOSIT_MIN:
        return None
    return AlertDraft(
        user_id=user_id,
        type=FraudAlertType.SUSPICIOUS_PAYMENT.value,
        severity=_severity(amount >= LARGE_DEPOSIT_HIGH),
        description=f"Large deposit of {cents_to_display(amount)}",
        metadata={
            "transaction_id": transaction_id,
            "amount": amount,
            "payment_method": payment_method,
        },
    )


def shared_ip_alert(ip_address: str, user_ids: list[str]) -> AlertDraft | None:
    """One alert per address, filed against the first account (sorted)."""
    accounts = sorted(set(user_ids))
    if len(accounts) < SHARED_IP_MIN_USERS:
        return None
    return AlertDraft(
        user_id=accounts[0],
        type=FraudAlertType.MULTIPLE_ACCOUNTS.value,
        severity=_severity(len(accounts) >= SHARED_IP_HIGH_USERS),
        description=f"{len(accounts)} accounts logged in from {ip_address}",
        ip_address=ip_address,
        metadata={"user_count": len(accounts), "user_ids": accounts},
    )


def dormant_deposit_alert(user_id: str, last_login_at: datetime | None) -> AlertDraft:
    return AlertDraft(
        user_id=user_id,
        type=FraudAlertType.UNUSUAL_ACTIVITY.value,
        severity=FraudSeverity.LOW.value,
        description="Inactive account suddenly topped up its balance",
        metadata={"last_login_at": last_login_at.isoformat() if last_login_at else None},
    )
