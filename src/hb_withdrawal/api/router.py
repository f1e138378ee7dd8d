"""Withdrawal requests: user endpoints and admin review."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.enums import WithdrawalStatus
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user, require_admin
from src.hb_gateway.user.db_models import UserModel
from src.hb_withdrawal.application.schemas import (
    CreateWithdrawalRequest,
    UpdateWithdrawalRequest,
)
from src.hb_withdrawal.application.service import WithdrawalService

router = APIRouter(prefix="/user/withdrawals", tags=["withdrawals"])
admin_router = APIRouter(prefix="/admin/withdrawals", tags=["admin"])

_service = WithdrawalService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
AdminUser = Annotated[UserModel, Depends(require_admin)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("")
async def list_my_withdrawals(current_user: CurrentUser, db: Db, request: Request) -> ApiResponse:
    data = await _service.list_for_user(db, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.post("", status_code=201)
async def create_withdrawal(
    body: CreateWithdrawalRequest, current_user: CurrentUser, db: Db, request: Request
) -> ApiResponse:
    data = await _service.create_request(db, str(current_user.id), body)
    return success_response(data.model_dump(), request)


@router.delete("/{request_id}")
async def cancel_withdrawal(
    request_id: UUID, current_user: CurrentUser, db: Db, request: Request
) -> ApiResponse:
    await _service.cancel(db, str(current_user.id), str(request_id))
    return success_response({"cancelled": True}, request)


@admin_router.get("")
async def list_withdrawals(
    admin: AdminUser,
    db: Db,
    request: Request,
    status: WithdrawalStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    data = await _service.list_all(db, status.value if status else None, limit)
    return success_response(data.model_dump(), request)


@admin_router.get("/{request_id}")
async def get_withdrawal(
    request_id: UUID, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    data = await _service.get_detail(db, str(request_id))
    return success_response(data.model_dump(), request)


@admin_router.patch("/{request_id}")
async def update_withdrawal(
    request_id: UUID,
    body: UpdateWithdrawalRequest,
    admin: AdminUser,
    db: Db,
    request: Request,
) -> ApiResponse:
    data = await _service.update_status(
        db, str(admin.id), str(request_id), body.status, body.admin_note
    )
    return success_response(data.model_dump(), request)
