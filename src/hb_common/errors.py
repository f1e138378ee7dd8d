"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: Ledger/Balance
  3xxx: Promotions (promocodes, gift certificates, referrals, discounts)
  4xxx: Spending limits / Withdrawals
  5xxx: Payments / Webhooks
  6xxx: Admin
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/User ---

class UsernameExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Username already exists", 409)


class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


class UserNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(1006, f"User not found: {user_id}", 404)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Administrator role required", 403)


class NotOwnerError(AppError):
    def __init__(self) -> None:
        super().__init__(1008, "Resource belongs to another user", 403)


# --- 2xxx: Ledger/Balance ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} kopecks, available {available} kopecks",
            400,
        )


class TransactionNotFoundError(AppError):
    def __init__(self, transaction_id: int | str) -> None:
        super().__init__(2002, f"Transaction not found: {transaction_id}", 404)


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2003, f"Invalid amount: {detail}", 400)


# --- 3xxx: Promotions ---

class PromocodeInvalidError(AppError):
    """Validation failure with a human-readable reason (not found, expired, used...)."""

    def __init__(self, reason: str) -> None:
        super().__init__(3001, reason, 400)


class PromocodeNotFoundError(AppError):
    def __init__(self, promocode_id: str) -> None:
        super().__init__(3002, f"Promocode not found: {promocode_id}", 404)


class PromocodeExistsError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(3003, f"Promocode already exists: {code}", 409)


class PromocodeExhaustedError(AppError):
    def __init__(self) -> None:
        super().__init__(3004, "Promocode usage limit reached", 400)


class GiftCertificateNotFoundError(AppError):
    def __init__(self) -> None:
        super().__init__(3010, "Gift certificate not found", 404)


class GiftCertificateInactiveError(AppError):
    def __init__(self) -> None:
        super().__init__(3011, "Gift certificate is deactivated", 400)


class GiftCertificateRedeemedError(AppError):
    def __init__(self) -> None:
        super().__init__(3012, "Gift certificate has already been redeemed", 400)


class GiftCertificateExpiredError(AppError):
    def __init__(self) -> None:
        super().__init__(3013, "Gift certificate has expired", 400)


class GiftCertificateOwnedError(AppError):
    def __init__(self) -> None:
        super().__init__(3014, "Gift certificate was activated by another user", 400)


class ReferralCodeError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(3020, reason, 400)


class DiscountTierNotFoundError(AppError):
    def __init__(self, tier_id: str) -> None:
        super().__init__(3030, f"Discount tier not found: {tier_id}", 404)


# --- 4xxx: Spending limits / Withdrawals ---

class SpendingLimitExceededError(AppError):
    def __init__(self, period: str, limit: int, spent: int) -> None:
        super().__init__(
            4001,
            f"{period.capitalize()} spending limit exceeded: limit {limit} kopecks, "
            f"already spent {spent} kopecks",
            400,
        )


class WithdrawalNotFoundError(AppError):
    def __init__(self, request_id: str) -> None:
        super().__init__(4010, f"Withdrawal request not found: {request_id}", 404)


class WithdrawalRejectedError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(4011, reason, 400)


class InvalidStatusTransitionError(AppError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(4012, f"Cannot change status from {current} to {target}", 400)


# --- 5xxx: Payments / Webhooks ---

class PaymentNotFoundError(AppError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(5001, f"Payment not found: {payment_id}", 404)


class InvalidSignatureError(AppError):
    def __init__(self) -> None:
        super().__init__(5002, "Invalid signature", 401)


class PaymentProviderError(AppError):
    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(5003, f"{provider} payment error: {detail}", 502)


class PaymentProviderUnavailableError(AppError):
    def __init__(self, provider: str) -> None:
        super().__init__(5004, f"Payment provider is not configured: {provider}", 400)


class InvalidWebhookPayloadError(AppError):
    def __init__(self) -> None:
        super().__init__(5005, "Invalid payload", 400)


class WebhookNotFoundError(AppError):
    def __init__(self, webhook_id: str) -> None:
        super().__init__(5010, f"Webhook not found: {webhook_id}", 404)


class WebhookLimitError(AppError):
    def __init__(self, limit: int) -> None:
        super().__init__(5011, f"Webhook limit reached (maximum {limit})", 400)


class WebhookDisabledError(AppError):
    def __init__(self, webhook_id: str) -> None:
        super().__init__(5012, f"Webhook is disabled: {webhook_id}", 409)


# --- 6xxx: Admin ---

class ScanInProgressError(AppError):
    def __init__(self) -> None:
        super().__init__(6001, "Fraud scan is already running", 409)


class FraudAlertNotFoundError(AppError):
    def __init__(self, alert_id: str) -> None:
        super().__init__(6002, f"Fraud alert not found: {alert_id}", 404)


class RefundRejectedError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(6003, reason, 400)


# --- 9xxx: System ---

class RequestValidationFailedError(AppError):
    """Body or query failed schema validation; field errors go in ``data``."""

    def __init__(self) -> None:
        super().__init__(9001, "Request validation failed", 422)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
