"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.mk_checkout.api.router import router as checkout_router
from src.mk_common.database import engine
from src.mk_common.errors import AppError, InternalError
from src.mk_common.redis_client import close_redis, get_redis
from src.mk_common.response import error_response
from src.mk_gateway.middleware.request_log import RequestLogMiddleware
from src.mk_payment.api.router import router as payment_router
from src.mk_payment.infrastructure.stripe_client import StripeGatewayClient
from src.mk_settlement.infrastructure.notifier import (
    PostmarkEmailSender,
    RedisNotificationEmitter,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    redis = await get_redis()
    await redis.ping()
    if not app.state.email_sender.enabled:
        logger.warning("POSTMARK_SERVER_TOKEN not set; buyer receipt emails are disabled")
    yield
    # Shutdown
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

# Owned outbound clients, one per process; routers pick them up from app.state
app.state.payment_gateway = StripeGatewayClient(
    api_key=settings.STRIPE_SECRET_KEY,
    webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    currency=settings.PAYMENT_CURRENCY,
    tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
)
app.state.email_sender = PostmarkEmailSender(
    api_url=settings.POSTMARK_API_URL,
    server_token=settings.POSTMARK_SERVER_TOKEN,
    sender=settings.EMAIL_FROM,
)
app.state.notification_emitter = RedisNotificationEmitter(
    redis_factory=get_redis,
    stream_name=settings.NOTIFICATION_STREAM,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = InternalError()
    resp = error_response(err.code, err.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(status_code=err.http_status, content=resp.model_dump())


app.include_router(checkout_router, prefix="/api/v1")
app.include_router(payment_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
