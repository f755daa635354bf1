"""PaymentIntentCoordinator — one gateway intent for all orders of a checkout.

Split invariant: every seller total is rounded to minor units BEFORE summing,
so Σ(splits) == intent.amount == Σ(to_minor_units(order.total_amount)).

The payment_intent_orders rows written here are the source of truth for
settlement; the gateway metadata copy is a debugging hint only.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.domain.models import Order
from src.mk_checkout.domain.repository import OrderRepositoryProtocol
from src.mk_checkout.infrastructure.persistence import OrderRepository
from src.mk_common.errors import PaymentGatewayError
from src.mk_common.money import to_minor_units
from src.mk_payment.domain.models import (
    CheckoutIntent,
    IntentLink,
    PaymentIntentRecord,
)
from src.mk_payment.domain.repository import (
    IntentRepositoryProtocol,
    PaymentGatewayProtocol,
)
from src.mk_payment.infrastructure.persistence import IntentRepository
from src.mk_payment.infrastructure.stripe_client import build_metadata

logger = logging.getLogger(__name__)


def compute_splits(orders: list[Order]) -> dict[str, int]:
    """seller_org_id -> minor units, each order total rounded before summing."""
    splits: dict[str, int] = {}
    for order in orders:
        splits[order.seller_org_id] = splits.get(order.seller_org_id, 0) + to_minor_units(
            order.total_amount
        )
    return splits


class PaymentIntentCoordinator:
    def __init__(
        self,
        gateway: PaymentGatewayProtocol,
        intent_repo: IntentRepositoryProtocol | None = None,
        order_repo: OrderRepositoryProtocol | None = None,
    ) -> None:
        self._gateway = gateway
        self._intents: IntentRepositoryProtocol = intent_repo or IntentRepository()
        self._orders: OrderRepositoryProtocol = order_repo or OrderRepository()

    async def create_intent(
        self,
        db: AsyncSession,
        buyer_org_id: str,
        buyer_user_id: str,
        orders: list[Order],
        checkout_group_id: str,
    ) -> CheckoutIntent:
        currency = self._gateway.currency
        splits = compute_splits(orders)
        total_minor = sum(splits.values())
        order_ids = [o.id for o in orders]

        created = await self._gateway.create_payment_intent(
            amount_minor=total_minor,
            currency=currency,
            metadata=build_metadata(
                {
                    "order_ids": order_ids,
                    "order_count": str(len(order_ids)),
                    "splits": splits,
                    "buyer_org_id": buyer_org_id,
                    "buyer_user_id": buyer_user_id,
                    "currency": currency,
                    "checkout_group_id": checkout_group_id,
                }
            ),
            idempotency_key=checkout_group_id,
        )
        record = PaymentIntentRecord(
            intent_id=created.id,
            amount_minor=created.amount_minor,
            currency=currency,
            order_ids=order_ids,
            splits=splits,
        )
        if not record.is_balanced:
            raise PaymentGatewayError(
                f"intent {created.id} amount {created.amount_minor} != splits {record.splits_total}"
            )

        await self._intents.save_links(
            db,
            [
                IntentLink(
                    intent_id=created.id,
                    order_id=o.id,
                    seller_org_id=o.seller_org_id,
                    split_amount_minor=to_minor_units(o.total_amount),
                    currency=currency.upper(),
                )
                for o in orders
            ],
        )
        await self._orders.attach_intent(db, order_ids, created.id)
        for order in orders:
            order.gateway_intent_id = created.id

        logger.info(
            "Created intent %s for %d order(s), amount=%d %s, sellers=%d",
            created.id,
            len(order_ids),
            total_minor,
            currency,
            len(splits),
        )
        return CheckoutIntent(client_secret=created.client_secret, record=record)
