"""Externally scheduled jobs. Authorized by ``Authorization: Bearer <CRON_SECRET>``."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.application.fraud_service import FraudScanService
from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import require_cron

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron)])

_fraud = FraudScanService()


@router.post("/fraud-scan")
async def cron_fraud_scan(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _fraud.run(db)
    return success_response(data.model_dump(), request)
