"""Webhook subscription endpoints (owner only)."""

from dataclasses import asdict
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_webhook.application.schemas import (
    CreateWebhookRequest,
    SendTestEventRequest,
    UpdateWebhookRequest,
)
from src.hb_webhook.application.service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_service = WebhookService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("")
async def list_webhooks(current_user: CurrentUser, db: Db, request: Request) -> ApiResponse:
    items = await _service.list_for_user(db, str(current_user.id))
    return success_response({"webhooks": [i.model_dump() for i in items]}, request)


@router.post("", status_code=201)
async def create_webhook(
    body: CreateWebhookRequest, current_user: CurrentUser, db: Db, request: Request
) -> ApiResponse:
    item = await _service.create(db, str(current_user.id), body)
    return success_response(item.model_dump(), request)


@router.patch("/{webhook_id}")
async def update_webhook(
    webhook_id: UUID,
    body: UpdateWebhookRequest,
    current_user: CurrentUser,
    db: Db,
    request: Request,
) -> ApiResponse:
    item = await _service.update(db, str(current_user.id), str(webhook_id), body)
    return success_response(item.model_dump(), request)


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: UUID, current_user: CurrentUser, db: Db, request: Request
) -> ApiResponse:
    await _service.delete(db, str(current_user.id), str(webhook_id))
    return success_response({"id": str(webhook_id), "deleted": True}, request)


@router.post("/{webhook_id}/secret")
async def regenerate_secret(
    webhook_id: UUID, current_user: CurrentUser, db: Db, request: Request
) -> ApiResponse:
    item = await _service.regenerate_secret(db, str(current_user.id), str(webhook_id))
    return success_response(item.model_dump(), request)


@router.post("/{webhook_id}/test")
async def send_test_event(
    webhook_id: UUID,
    body: SendTestEventRequest,
    current_user: CurrentUser,
    db: Db,
    request: Request,
) -> ApiResponse:
    result = await _service.send_test(db, str(current_user.id), str(webhook_id), body.event)
    return success_response(asdict(result), request)
