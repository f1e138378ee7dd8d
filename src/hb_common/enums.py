"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"
    REFERRAL = "REFERRAL"
    PROMOCODE = "PROMOCODE"
    BONUS = "BONUS"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ReferenceType(str, Enum):
    """What a ledger row points at; reference_id holds the id."""
    PROMOCODE = "PROMOCODE"
    GIFT_CERTIFICATE = "GIFT_CERTIFICATE"
    REFERRED_USER = "REFERRED_USER"
    TRANSACTION = "TRANSACTION"
    WITHDRAWAL_REQUEST = "WITHDRAWAL_REQUEST"
    ADMIN = "ADMIN"


class PromocodeType(str, Enum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"
    BALANCE = "BALANCE"


class PlanType(str, Enum):
    GAME = "GAME"
    VPS = "VPS"
    WEB = "WEB"
    BOT = "BOT"


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class WithdrawalMethod(str, Enum):
    CARD = "CARD"
    YOOMONEY = "YOOMONEY"
    QIWI = "QIWI"
    CRYPTO = "CRYPTO"


class PaymentProvider(str, Enum):
    YOOKASSA = "yookassa"
    STRIPE = "stripe"
    PAYPAL = "paypal"
    CRYPTOPAY = "cryptopay"


class WebhookEvent(str, Enum):
    SERVER_CREATED = "SERVER_CREATED"
    SERVER_DELETED = "SERVER_DELETED"
    SERVER_EXPIRED = "SERVER_EXPIRED"
    SERVER_RENEWED = "SERVER_RENEWED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    BALANCE_LOW = "BALANCE_LOW"
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_REPLIED = "TICKET_REPLIED"


class FraudAlertType(str, Enum):
    VELOCITY = "VELOCITY"
    SUSPICIOUS_PAYMENT = "SUSPICIOUS_PAYMENT"
    MULTIPLE_ACCOUNTS = "MULTIPLE_ACCOUNTS"
    UNUSUAL_ACTIVITY = "UNUSUAL_ACTIVITY"


class FraudSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class FraudAlertStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class NotificationType(str, Enum):
    PAYMENT = "PAYMENT"
    SYSTEM = "SYSTEM"
    WITHDRAWAL = "WITHDRAWAL"
