"""Tests for hb_common.enums — values must match the DB CHECK constraints."""

from src.hb_common.enums import (
    FraudAlertStatus,
    FraudAlertType,
    FraudSeverity,
    NotificationType,
    PaymentProvider,
    PromocodeType,
    ReferenceType,
    TransactionStatus,
    TransactionType,
    WebhookEvent,
    WithdrawalMethod,
    WithdrawalStatus,
)


class TestAllEnumsAreStr:
    """All enums inherit from (str, Enum) so they bind and serialize as plain text."""

    def test_transaction_type_is_str(self) -> None:
        assert isinstance(TransactionType.DEPOSIT, str)
        assert TransactionType.DEPOSIT == "DEPOSIT"

    def test_provider_values_are_lowercase(self) -> None:
        assert PaymentProvider("yookassa") is PaymentProvider.YOOKASSA


class TestTransactionType:
    def test_all_values(self) -> None:
        expected = {"DEPOSIT", "WITHDRAWAL", "PURCHASE", "REFUND", "REFERRAL", "PROMOCODE", "BONUS"}
        assert {t.value for t in TransactionType} == expected


class TestTransactionStatus:
    def test_all_values(self) -> None:
        assert {s.value for s in TransactionStatus} == {
            "PENDING", "COMPLETED", "FAILED", "CANCELLED",
        }


class TestReferenceType:
    def test_all_values(self) -> None:
        assert {r.value for r in ReferenceType} == {
            "PROMOCODE", "GIFT_CERTIFICATE", "REFERRED_USER",
            "TRANSACTION", "WITHDRAWAL_REQUEST", "ADMIN",
        }


class TestPromotionEnums:
    def test_promocode_types(self) -> None:
        assert {p.value for p in PromocodeType} == {"PERCENT", "FIXED", "BALANCE"}


class TestWithdrawalEnums:
    def test_statuses(self) -> None:
        assert {s.value for s in WithdrawalStatus} == {
            "PENDING", "PROCESSING", "COMPLETED", "REJECTED",
        }

    def test_methods(self) -> None:
        assert {m.value for m in WithdrawalMethod} == {"CARD", "YOOMONEY", "QIWI", "CRYPTO"}


class TestWebhookEvent:
    def test_all_values(self) -> None:
        assert len(WebhookEvent) == 9
        assert WebhookEvent.BALANCE_LOW.value == "BALANCE_LOW"


class TestFraudEnums:
    def test_types(self) -> None:
        assert {t.value for t in FraudAlertType} == {
            "VELOCITY", "SUSPICIOUS_PAYMENT", "MULTIPLE_ACCOUNTS", "UNUSUAL_ACTIVITY",
        }

    def test_severity_and_status(self) -> None:
        assert {s.value for s in FraudSeverity} == {"LOW", "MEDIUM", "HIGH"}
        assert {s.value for s in FraudAlertStatus} == {"OPEN", "RESOLVED", "DISMISSED"}


class TestNotificationType:
    def test_all_values(self) -> None:
        assert {n.value for n in NotificationType} == {"PAYMENT", "SYSTEM", "WITHDRAWAL"}
