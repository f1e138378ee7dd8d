"""Tests for hb_common.errors and hb_common.response."""

from unittest.mock import MagicMock

from src.hb_common.errors import (
    AppError,
    InsufficientBalanceError,
    InvalidSignatureError,
    InvalidStatusTransitionError,
    NotOwnerError,
    PaymentNotFoundError,
    PaymentProviderError,
    RefundRejectedError,
    ScanInProgressError,
    SpendingLimitExceededError,
    WithdrawalNotFoundError,
)
from src.hb_common.response import error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500

    def test_custom_http_status(self) -> None:
        err = AppError(code=1001, message="Username taken", http_status=409)
        assert err.http_status == 409

    def test_is_exception(self) -> None:
        assert isinstance(AppError(code=1001, message="test"), Exception)


class TestSpecificErrors:
    def test_insufficient_balance(self) -> None:
        err = InsufficientBalanceError(required=6500, available=3000)
        assert err.code == 2001
        assert err.http_status == 400
        assert "6500" in err.message
        assert "3000" in err.message

    def test_not_owner_is_forbidden(self) -> None:
        assert NotOwnerError().http_status == 403

    def test_spending_limit_message(self) -> None:
        err = SpendingLimitExceededError("daily", 100000, 90000)
        assert err.code == 4001
        assert err.message.startswith("Daily spending limit exceeded")

    def test_withdrawal_not_found(self) -> None:
        err = WithdrawalNotFoundError("abc")
        assert err.http_status == 404
        assert "abc" in err.message

    def test_status_transition(self) -> None:
        err = InvalidStatusTransitionError("COMPLETED", "PENDING")
        assert err.code == 4012
        assert "COMPLETED" in err.message and "PENDING" in err.message

    def test_payment_errors(self) -> None:
        assert PaymentNotFoundError("p-1").http_status == 404
        assert InvalidSignatureError().http_status == 401
        assert PaymentProviderError("stripe", "boom").http_status == 502

    def test_admin_errors(self) -> None:
        assert ScanInProgressError().http_status == 409
        assert RefundRejectedError("no").code == 6003


class TestApiResponse:
    def test_success(self) -> None:
        resp = success_response({"id": "abc"})
        assert resp.code == 0
        assert resp.message == "success"
        assert resp.data == {"id": "abc"}

    def test_error(self) -> None:
        resp = error_response(2001, "Insufficient balance")
        assert resp.code == 2001
        assert resp.data is None

    def test_serialization(self) -> None:
        d = success_response({"amount": 100}).model_dump()
        for key in ("code", "message", "data", "timestamp", "request_id"):
            assert key in d

    def test_request_id_echoed(self) -> None:
        request = MagicMock()
        request.state.request_id = "req_abc123def456"
        assert success_response({}, request).request_id == "req_abc123def456"
        assert error_response(3001, "Promocode not found", request).request_id == (
            "req_abc123def456"
        )
