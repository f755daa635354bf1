"""CheckoutService — cart -> per-seller orders -> one payment intent.

The whole checkout is one database transaction: order rows, items, timeline
entries, intent links and the intent id on each order commit together, or not
at all. The gateway call happens inside that transaction; if it fails nothing
is committed. Stripe's idempotency key is the checkout_group_id, so a retried
call with the same group never creates a second intent.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.application.order_factory import OrderFactory
from src.mk_checkout.application.schemas import CheckoutRequest, CheckoutResponse
from src.mk_checkout.domain.models import AddressSnapshot
from src.mk_checkout.domain.pricing import PricingPolicy
from src.mk_checkout.domain.repository import (
    AddressRepositoryProtocol,
    CartRepositoryProtocol,
)
from src.mk_checkout.domain.splitter import split_cart
from src.mk_checkout.infrastructure.persistence import AddressRepository, CartRepository
from src.mk_common.errors import AddressNotFoundError, EmptyCartError
from src.mk_payment.application.intents import PaymentIntentCoordinator

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        coordinator: PaymentIntentCoordinator,
        pricing: PricingPolicy,
        cart_repo: CartRepositoryProtocol | None = None,
        address_repo: AddressRepositoryProtocol | None = None,
        order_factory: OrderFactory | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._pricing = pricing
        self._carts: CartRepositoryProtocol = cart_repo or CartRepository()
        self._addresses: AddressRepositoryProtocol = address_repo or AddressRepository()
        self._factory = order_factory or OrderFactory()

    async def _load_address(
        self, db: AsyncSession, address_id: str, buyer_org_id: str
    ) -> AddressSnapshot:
        row = await self._addresses.get_buyer_address(db, address_id, buyer_org_id)
        if row is None:
            raise AddressNotFoundError(address_id)
        return AddressSnapshot.capture(address_id, row)

    async def checkout(
        self,
        db: AsyncSession,
        buyer_org_id: str,
        buyer_user_id: str,
        req: CheckoutRequest,
        currency: str,
    ) -> CheckoutResponse:
        checkout_group_id = str(uuid.uuid4())
        try:
            cart_id = await self._carts.get_cart_id(db, buyer_org_id, buyer_user_id)
            if cart_id is None:
                raise EmptyCartError()
            items = await self._carts.list_items(db, cart_id)
            groups = split_cart(items, self._pricing)

            shipping = await self._load_address(db, req.shipping_address_id, buyer_org_id)
            if req.billing_address_id and req.billing_address_id != req.shipping_address_id:
                billing = await self._load_address(db, req.billing_address_id, buyer_org_id)
            else:
                billing = AddressSnapshot.capture(shipping.address_id, shipping.data)

            orders = await self._factory.create_orders(
                db,
                buyer_org_id=buyer_org_id,
                buyer_user_id=buyer_user_id,
                groups=groups,
                shipping_address=shipping,
                billing_address=billing,
                buyer_notes=req.buyer_notes,
                currency=currency,
                checkout_group_id=checkout_group_id,
            )
            intent = await self._coordinator.create_intent(
                db,
                buyer_org_id=buyer_org_id,
                buyer_user_id=buyer_user_id,
                orders=orders,
                checkout_group_id=checkout_group_id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Checkout %s for buyer %s/%s: %d order(s), intent %s",
            checkout_group_id,
            buyer_org_id,
            buyer_user_id,
            len(orders),
            intent.record.intent_id,
        )
        return CheckoutResponse(
            client_secret=intent.client_secret,
            order_ids=intent.record.order_ids,
        )
