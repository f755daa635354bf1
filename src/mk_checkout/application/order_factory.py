"""OrderFactory — one pending order (+ items) per seller group.

Runs inside the caller's transaction. If an item insert fails the exception
propagates and the caller rolls back, taking the order row with it: an order
is never left without its items.
"""

import logging
import uuid
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.domain.models import AddressSnapshot, Order, OrderItem, SellerGroup
from src.mk_checkout.domain.repository import OrderRepositoryProtocol
from src.mk_checkout.infrastructure.persistence import OrderRepository
from src.mk_checkout.infrastructure.timeline import write_timeline_entry
from src.mk_common.enums import OrderStatus, PaymentStatus, TimelineEventType
from src.mk_common.id_generator import generate_order_number

logger = logging.getLogger(__name__)


class OrderFactory:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        number_generator: Callable[[], str] = generate_order_number,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._next_number = number_generator

    async def create_orders(
        self,
        db: AsyncSession,
        buyer_org_id: str,
        buyer_user_id: str,
        groups: dict[str, SellerGroup],
        shipping_address: AddressSnapshot,
        billing_address: AddressSnapshot,
        buyer_notes: str | None,
        currency: str,
        checkout_group_id: str,
    ) -> list[Order]:
        orders: list[Order] = []
        for seller_org_id, group in groups.items():
            order = Order(
                id=str(uuid.uuid4()),
                order_number=self._next_number(),
                checkout_group_id=checkout_group_id,
                buyer_org_id=buyer_org_id,
                buyer_user_id=buyer_user_id,
                seller_org_id=seller_org_id,
                subtotal=group.subtotal,
                tax_amount=group.tax_amount,
                shipping_amount=group.shipping_amount,
                discount_amount=group.discount_amount,
                total_amount=group.total_amount,
                currency=currency.upper(),
                # Each order gets its own copy; later edits to one never leak into another
                shipping_address=shipping_address.to_json(),
                billing_address=billing_address.to_json(),
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                buyer_notes=buyer_notes,
            )
            await self._repo.insert_order(db, order)

            for cart_item in group.items:
                item = OrderItem(
                    order_id=order.id,
                    product_id=cart_item.product_id,
                    product_name=cart_item.product_name,
                    product_sku=cart_item.product_sku,
                    unit_price=cart_item.unit_price,
                    quantity=cart_item.quantity,
                    product_snapshot=cart_item.product_snapshot,
                )
                await self._repo.insert_item(db, item)
                order.items.append(item)

            await write_timeline_entry(
                order_id=order.id,
                event_type=TimelineEventType.ORDER_CREATED.value,
                description="Order created from cart",
                metadata={
                    "items_count": len(order.items),
                    "checkout_group_id": checkout_group_id,
                },
                created_by=buyer_user_id,
                db=db,
            )
            logger.info(
                "Created order %s for seller %s: %d item(s), total %s %s",
                order.order_number,
                seller_org_id,
                len(order.items),
                order.total_amount,
                order.currency,
            )
            orders.append(order)
        return orders
