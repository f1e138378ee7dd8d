"""Auth API router: register, login, refresh."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_common.database import get_db_session
from src.hb_common.response import ApiResponse, success_response
from src.hb_gateway.auth.jwt_handler import access_token_ttl_seconds
from src.hb_gateway.user.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
)
from src.hb_gateway.user.service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])
_service = UserService()


def _client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse,
    summary="User registration",
)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse:
    async with db.begin():
        user = await _service.register(
            body.username, body.email, body.password, db, referral_code=body.referral_code
        )

    data = RegisterResponse(
        user_id=str(user.id),
        username=user.username,
        email=user.email,
        referral_code=user.referral_code,
        created_at=user.created_at.isoformat(),
    )
    resp = success_response(data.model_dump(), request)
    resp.message = "User registered successfully"
    return resp


@router.post("/login", response_model=ApiResponse, summary="User login")
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse:
    async with db.begin():
        user, access_token, refresh_token = await _service.login(
            body.username,
            body.password,
            db,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    data = LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=access_token_ttl_seconds(),
        user=UserInfo(
            user_id=str(user.id),
            username=user.username,
            email=user.email,
            role=user.role,
            referral_code=user.referral_code,
            balance_cents=user.balance,
        ),
    )
    return success_response(data.model_dump(), request)


@router.post("/refresh", response_model=ApiResponse, summary="Refresh access token")
async def refresh(
    request: Request,
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse:
    access_token = await _service.refresh(body.refresh_token, db)
    data = RefreshResponse(
        access_token=access_token,
        expires_in=access_token_ttl_seconds(),
    )
    return success_response(data.model_dump(), request)
