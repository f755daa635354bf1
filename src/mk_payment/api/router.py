"""mk_payment REST API — Stripe webhook + public client config.

The webhook is unauthenticated; the Stripe-Signature header is the only
credential. It MUST read the raw body: any re-serialization breaks the HMAC.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_payment.application.webhook import WebhookProcessor
from src.mk_settlement.application.best_effort import BestEffortRunner
from src.mk_settlement.application.failure import FailureHandler
from src.mk_settlement.application.settlement import SettlementHandler

router = APIRouter(prefix="/payments", tags=["payments"])


def get_webhook_processor(request: Request) -> WebhookProcessor:
    state = request.app.state
    settlement = SettlementHandler(
        email_sender=state.email_sender,
        emitter=state.notification_emitter,
        runner=BestEffortRunner(settings.NOTIFY_TIMEOUT_SECONDS),
        frontend_url=settings.FRONTEND_URL,
    )
    return WebhookProcessor(
        gateway=state.payment_gateway,
        settlement=settlement,
        failure=FailureHandler(),
    )


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    processor: Annotated[WebhookProcessor, Depends(get_webhook_processor)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> dict[str, Any]:
    raw_body = await request.body()
    await processor.process(db, raw_body, stripe_signature)
    return {"received": True}


@router.get("/config")
async def payment_config(request: Request) -> ApiResponse:
    resp = success_response({"publishable_key": settings.STRIPE_PUBLISHABLE_KEY})
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
