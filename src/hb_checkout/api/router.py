"""Checkout: price quote and purchase from balance."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_checkout.application.schemas import CheckoutRequest, QuoteRequest
from src.hb_checkout.application.service import CheckoutService
from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel

router = APIRouter(prefix="/billing/checkout", tags=["checkout"])

_service = CheckoutService()


@router.post("/quote")
async def quote(
    body: QuoteRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.quote(
        db,
        str(current_user.id),
        body.amount,
        body.promocode,
        body.plan_type.value if body.plan_type else None,
    )
    return success_response(data.model_dump(), request)


@router.post("", status_code=201)
async def checkout(
    body: CheckoutRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.purchase(
        db,
        str(current_user.id),
        body.amount,
        body.description,
        body.promocode,
        body.plan_type.value if body.plan_type else None,
    )
    return success_response(data.model_dump(), request)
