"""hb_admin REST API — ADMIN role required on every route."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.application.fraud_service import FraudScanService
from src.hb_admin.application.schemas import (
    AdjustBalanceRequest,
    MassBonusRequest,
    RefundRequest,
    UpdateAlertRequest,
)
from src.hb_admin.application.service import AdminService
from src.hb_common.database import get_db_session
from src.hb_common.enums import FraudAlertStatus, FraudSeverity
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import require_admin
from src.hb_gateway.user.db_models import UserModel

router = APIRouter(prefix="/admin", tags=["admin"])

_service = AdminService()
_fraud = FraudScanService()

AdminUser = Annotated[UserModel, Depends(require_admin)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


# --- fraud ---

@router.post("/fraud/scan")
async def run_fraud_scan(admin: AdminUser, db: Db, request: Request) -> ApiResponse:
    data = await _fraud.run(db, str(admin.id))
    return success_response(data.model_dump(), request)


@router.get("/fraud")
async def list_fraud_alerts(
    admin: AdminUser,
    db: Db,
    request: Request,
    status: FraudAlertStatus | None = Query(None),
    severity: FraudSeverity | None = Query(None),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    data = await _fraud.list_alerts(
        db,
        status.value if status else None,
        severity.value if severity else None,
        cursor,
        limit,
    )
    return success_response(data.model_dump(), request)


@router.put("/fraud/{alert_id}")
async def update_fraud_alert(
    alert_id: int, body: UpdateAlertRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    data = await _fraud.update_alert(db, str(admin.id), alert_id, body.status.value, body.note)
    return success_response(data.model_dump(), request)


# --- refunds ---

@router.get("/refunds")
async def list_refunds(
    admin: AdminUser,
    db: Db,
    request: Request,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    data = await _service.list_refunds(db, cursor, limit)
    return success_response(data.model_dump(), request)


@router.post("/refunds")
async def refund(body: RefundRequest, admin: AdminUser, db: Db, request: Request) -> ApiResponse:
    data = await _service.refund(db, str(admin.id), body.transaction_id, body.amount, body.reason)
    return success_response(data.model_dump(), request)


# --- bonuses and balances ---

@router.post("/mass-bonus")
async def mass_bonus(
    body: MassBonusRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    data = await _service.mass_bonus(
        db, str(admin.id), [str(u) for u in body.user_ids], body.amount, body.reason
    )
    return success_response(data.model_dump(), request)


@router.get("/mass-bonus/history")
async def mass_bonus_history(
    admin: AdminUser,
    db: Db,
    request: Request,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
) -> ApiResponse:
    data = await _service.list_audit(db, "MASS_BONUS_SENT", cursor, limit)
    return success_response(data.model_dump(), request)


@router.post("/users/{user_id}/balance")
async def adjust_balance(
    user_id: UUID, body: AdjustBalanceRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    data = await _service.adjust_balance(
        db, str(admin.id), str(user_id), body.action, body.amount, body.reason
    )
    return success_response(data.model_dump(), request)


@router.get("/users/{user_id}/reconcile")
async def reconcile_user(user_id: UUID, admin: AdminUser, db: Db, request: Request) -> ApiResponse:
    data = await _service.reconcile(db, str(user_id))
    return success_response(data.model_dump(), request)


# --- audit ---

@router.get("/audit")
async def list_audit(
    admin: AdminUser,
    db: Db,
    request: Request,
    action: str | None = Query(None, max_length=64),
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
) -> ApiResponse:
    data = await _service.list_audit(db, action, cursor, limit)
    return success_response(data.model_dump(), request)
