"""hb_ledger REST API — balance and transaction history, JWT required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.enums import TransactionType
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_ledger.application.service import LedgerApplicationService

router = APIRouter(prefix="/billing", tags=["billing"])

_service = LedgerApplicationService()


@router.get("/balance")
async def get_balance(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_balance(db, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.get("/transactions")
async def list_transactions(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    type: TransactionType | None = Query(None, description="Filter by transaction type"),
) -> ApiResponse:
    data = await _service.list_transactions(
        db, str(current_user.id), cursor, limit, type.value if type else None
    )
    return success_response(data.model_dump(), request)


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_transaction(db, str(current_user.id), transaction_id)
    return success_response(data.model_dump(), request)
