"""Notification inbox endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_notification.application.service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])

_service = NotificationService()


@router.get("")
async def list_notifications(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    items = await _service.list_for_user(db, str(current_user.id), unread_only, limit)
    return success_response({"items": [i.model_dump() for i in items]}, request)


@router.post("/read")
async def mark_all_read(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    changed = await _service.mark_read(db, str(current_user.id))
    return success_response({"updated": changed}, request)


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    changed = await _service.mark_read(db, str(current_user.id), notification_id)
    return success_response({"updated": changed}, request)
