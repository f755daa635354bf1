"""mk_checkout REST API — buyer checkout, JWT (buyer account) required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_checkout.application.schemas import CheckoutRequest
from src.mk_checkout.application.service import CheckoutService
from src.mk_checkout.domain.pricing import FlatRatePricing
from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import CurrentUser, require_buyer
from src.mk_payment.application.intents import PaymentIntentCoordinator

router = APIRouter(prefix="/checkout", tags=["checkout"])

_pricing = FlatRatePricing(
    shipping=settings.CHECKOUT_FLAT_SHIPPING,
    tax_rate=settings.CHECKOUT_TAX_RATE,
)


def get_checkout_service(request: Request) -> CheckoutService:
    """Build the service around the application's owned gateway client."""
    coordinator = PaymentIntentCoordinator(request.app.state.payment_gateway)
    return CheckoutService(coordinator=coordinator, pricing=_pricing)


@router.post("/payment-intent")
async def create_payment_intent(
    body: CheckoutRequest,
    buyer: Annotated[CurrentUser, Depends(require_buyer)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[CheckoutService, Depends(get_checkout_service)],
    request: Request,
) -> ApiResponse:
    data = await service.checkout(
        db,
        buyer_org_id=str(buyer.organization_id),
        buyer_user_id=buyer.user_id,
        req=body,
        currency=request.app.state.payment_gateway.currency,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
