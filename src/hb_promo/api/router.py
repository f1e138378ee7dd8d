"""hb_promo user-facing API: promocodes, gift certificates, referrals, discount."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.dependencies import get_current_user
from src.hb_gateway.user.db_models import UserModel
from src.hb_promo.application.discount_service import DiscountService
from src.hb_promo.application.gift_service import GiftCertificateService
from src.hb_promo.application.promocode_service import PromocodeService
from src.hb_promo.application.referral_service import ReferralService
from src.hb_promo.application.schemas import (
    ApplyReferralRequest,
    RedeemGiftRequest,
    ValidatePromocodeRequest,
    ValidatePromocodeResponse,
)

router = APIRouter(tags=["promotions"])

_promocodes = PromocodeService()
_gifts = GiftCertificateService()
_referrals = ReferralService()
_discounts = DiscountService()


@router.post("/promocodes/validate")
async def validate_promocode(
    body: ValidatePromocodeRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _promocodes.validate(
        db,
        body.code,
        str(current_user.id),
        body.order_amount,
        body.plan_type.value if body.plan_type else None,
    )
    return success_response(ValidatePromocodeResponse.from_result(result).model_dump(), request)


@router.post("/promocodes/apply")
async def apply_promocode(
    body: ValidatePromocodeRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _promocodes.apply(
        db,
        body.code,
        str(current_user.id),
        body.order_amount,
        body.plan_type.value if body.plan_type else None,
    )
    return success_response(data.model_dump(), request)


@router.post("/billing/gift-certificate")
async def redeem_gift_certificate(
    body: RedeemGiftRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _gifts.redeem(db, body.code, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.get("/referrals")
async def get_referral_info(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _referrals.get_referral_info(db, str(current_user.id))
    return success_response(data, request)


@router.post("/referrals/apply")
async def apply_referral_code(
    body: ApplyReferralRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _referrals.apply_referral_code(db, str(current_user.id), body.code)
    return success_response(data, request)


@router.post("/referrals/regenerate")
async def regenerate_referral_code(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _referrals.regenerate_referral_code(db, str(current_user.id))
    return success_response(data, request)


@router.get("/user/discount")
async def get_user_discount(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _discounts.get_user_discount(db, str(current_user.id))
    return success_response(data.model_dump(), request)
