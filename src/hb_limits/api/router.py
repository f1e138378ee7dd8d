"""Spending limit settings and usage stats."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_limits.application.schemas import UpdateLimitsRequest
from src.hb_limits.application.service import SpendingLimitService

router = APIRouter(prefix="/user/spending-limits", tags=["spending-limits"])

_service = SpendingLimitService()


@router.get("")
async def get_spending_limits(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_limits(db, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.put("")
async def update_spending_limits(
    body: UpdateLimitsRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.update_limits(db, str(current_user.id), body)
    return success_response(data.model_dump(), request)
