"""hb_payment REST API — top-up creation and provider callbacks.

Provider callbacks are unauthenticated at the HTTP level; each provider client
verifies its own signature (or re-reads the payment from the provider API).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_payment.application.schemas import CreatePaymentRequest, SandboxPaymentRequest
from src.hb_payment.application.service import PaymentService

router = APIRouter(prefix="/billing", tags=["payments"])

_service = PaymentService()


@router.post("/webhooks/{provider}")
async def provider_webhook(
    provider: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    # Signatures are computed over the exact bytes received
    body = await request.body()
    data = await _service.handle_webhook(db, provider, body, request.headers)
    return success_response(data, request)


@router.post("/payment")
async def create_payment(
    body: CreatePaymentRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.create_topup(
        db, str(current_user.id), body.provider.value, body.amount
    )
    return success_response(data.model_dump(), request)


@router.get("/payment/methods")
async def payment_methods(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    request: Request,
) -> ApiResponse:
    return success_response(_service.available_methods().model_dump(), request)


@router.post("/test-payment")
async def test_payment(
    body: SandboxPaymentRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.test_payment(db, str(current_user.id), body.amount, body.success)
    return success_response(data.model_dump(), request)
