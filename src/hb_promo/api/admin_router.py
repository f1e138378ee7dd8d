"""hb_promo admin API — ADMIN role required on every route."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import require_admin
from src.hb_gateway.user.db_models import UserModel
from src.hb_promo.application.discount_service import DiscountService
from src.hb_promo.application.gift_service import GiftCertificateService
from src.hb_promo.application.promocode_service import PromocodeService
from src.hb_promo.application.schemas import (
    CreateGiftRequest,
    CreatePromocodeRequest,
    SaveTierRequest,
    UpdatePromocodeRequest,
)

router = APIRouter(prefix="/admin", tags=["admin-promotions"])

_promocodes = PromocodeService()
_gifts = GiftCertificateService()
_discounts = DiscountService()

AdminUser = Annotated[UserModel, Depends(require_admin)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


# --- promocodes ---

@router.get("/promocodes")
async def list_promocodes(admin: AdminUser, db: Db, request: Request) -> ApiResponse:
    items = await _promocodes.list_all(db)
    return success_response({"promocodes": [i.model_dump() for i in items]}, request)


@router.post("/promocodes", status_code=201)
async def create_promocode(
    body: CreatePromocodeRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    item = await _promocodes.create(db, str(admin.id), body)
    return success_response(item.model_dump(), request)


@router.patch("/promocodes/{promocode_id}")
async def update_promocode(
    promocode_id: UUID,
    body: UpdatePromocodeRequest,
    admin: AdminUser,
    db: Db,
    request: Request,
) -> ApiResponse:
    item = await _promocodes.update(db, str(admin.id), str(promocode_id), body)
    return success_response(item.model_dump(), request)


@router.delete("/promocodes/{promocode_id}")
async def delete_promocode(
    promocode_id: UUID, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    data = await _promocodes.delete(db, str(admin.id), str(promocode_id))
    return success_response(data, request)


@router.get("/promocodes/{promocode_id}/usages")
async def list_promocode_usages(
    promocode_id: UUID, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    usages = await _promocodes.list_usages(db, str(promocode_id))
    return success_response({"usages": usages}, request)


# --- gift certificates ---

@router.get("/gift-certificates")
async def list_gift_certificates(
    admin: AdminUser,
    db: Db,
    request: Request,
    search: str | None = Query(None, max_length=64),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    data = await _gifts.list(db, search, page, limit)
    return success_response(data, request)


@router.post("/gift-certificates", status_code=201)
async def create_gift_certificate(
    body: CreateGiftRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    item = await _gifts.create(db, str(admin.id), body)
    return success_response(item.model_dump(), request)


@router.delete("/gift-certificates/{certificate_id}")
async def deactivate_gift_certificate(
    certificate_id: UUID, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    item = await _gifts.deactivate(db, str(admin.id), str(certificate_id))
    return success_response(item.model_dump(), request)


# --- volume discount tiers ---

@router.get("/discounts")
async def list_discount_tiers(admin: AdminUser, db: Db, request: Request) -> ApiResponse:
    tiers = await _discounts.list_tiers(db)
    return success_response({"tiers": [t.model_dump() for t in tiers]}, request)


@router.post("/discounts", status_code=201)
async def create_discount_tier(
    body: SaveTierRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    tier = await _discounts.save_tier(db, str(admin.id), body)
    return success_response(tier.model_dump(), request)


@router.put("/discounts/{tier_id}")
async def update_discount_tier(
    tier_id: UUID, body: SaveTierRequest, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    tier = await _discounts.save_tier(db, str(admin.id), body, str(tier_id))
    return success_response(tier.model_dump(), request)


@router.delete("/discounts/{tier_id}")
async def delete_discount_tier(
    tier_id: UUID, admin: AdminUser, db: Db, request: Request
) -> ApiResponse:
    await _discounts.delete_tier(db, str(admin.id), str(tier_id))
    return success_response({"id": str(tier_id), "deleted": True}, request)
