"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.hb_admin.api.cron_router import router as cron_router
from src.hb_admin.api.router import router as admin_router
from src.hb_checkout.api.router import router as checkout_router
from src.hb_common.database import engine
from src.hb_common.errors import AppError, RequestValidationFailedError
from src.hb_common.redis_client import close_redis, get_redis
from src.hb_common.response import error_response
from src.hb_gateway.api.router import router as auth_router
from src.hb_gateway.middleware.request_log import RequestLogMiddleware
from src.hb_ledger.api.router import router as ledger_router
from src.hb_limits.api.router import router as limits_router
from src.hb_notification.api.router import router as notification_router
from src.hb_payment.api.router import router as payment_router
from src.hb_promo.api.admin_router import router as promo_admin_router
from src.hb_promo.api.router import router as promo_router
from src.hb_webhook.api.router import router as webhook_router
from src.hb_webhook.application.dispatcher import dispatcher
from src.hb_withdrawal.api.router import admin_router as withdrawal_admin_router
from src.hb_withdrawal.api.router import router as withdrawal_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: drain webhooks, dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    yield
    await dispatcher.drain()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, request)
    return JSONResponse(status_code=exc.http_status, content=resp.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures use the same envelope, with pydantic's field errors as data."""
    err = RequestValidationFailedError()
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    resp = error_response(err.code, err.message, request, data=jsonable_encoder(errors))
    return JSONResponse(status_code=err.http_status, content=resp.model_dump())


for _router in (
    auth_router,
    ledger_router,
    payment_router,
    checkout_router,
    promo_router,
    promo_admin_router,
    limits_router,
    withdrawal_router,
    withdrawal_admin_router,
    webhook_router,
    notification_router,
    admin_router,
    cron_router,
):
    app.include_router(_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
