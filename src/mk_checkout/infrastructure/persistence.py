"""Checkout repositories — raw SQL over carts, addresses and orders.

Transaction ownership: the CALLER (CheckoutService / SettlementHandler) commits
or rolls back. Nothing here commits.

shopping_carts, cart_items, products and buyer_addresses belong to the catalog
and buyer services; this module only reads them (and deletes cart lines after
settlement).
"""

import json
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.domain.models import CartItem, Order, OrderItem
from src.mk_common.errors import CheckoutValidationError

# ---------------------------------------------------------------------------
# SQL: carts (collaborator tables)
# ---------------------------------------------------------------------------

_GET_CART_ID_SQL = text("""
    SELECT id FROM shopping_carts
    WHERE buyer_org_id = :buyer_org_id AND buyer_user_id = :buyer_user_id
""")

_LIST_CART_ITEMS_SQL = text("""
    SELECT ci.id, ci.product_id, ci.quantity,
           p.seller_org_id, p.name, p.sku, p.base_price, p.sale_price,
           p.currency, p.stock_quantity
    FROM cart_items ci
    LEFT JOIN products p ON p.id = ci.product_id
    WHERE ci.cart_id = :cart_id
    ORDER BY ci.added_at, ci.id
""")

_CLEAR_CART_SQL = text("""
    DELETE FROM cart_items
    WHERE cart_id IN (
        SELECT id FROM shopping_carts
        WHERE buyer_org_id = :buyer_org_id AND buyer_user_id = :buyer_user_id
    )
""")

_GET_ADDRESS_SQL = text("""
    SELECT * FROM buyer_addresses
    WHERE id = :address_id AND buyer_org_id = :buyer_org_id
""")

# ---------------------------------------------------------------------------
# SQL: orders (owned)
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, checkout_group_id,
        buyer_org_id, buyer_user_id, seller_org_id,
        status, payment_status,
        subtotal, tax_amount, shipping_amount, discount_amount, total_amount,
        currency, shipping_address, billing_address, buyer_notes)
    VALUES (:id, :order_number, :checkout_group_id,
        :buyer_org_id, :buyer_user_id, :seller_org_id,
        :status, :payment_status,
        :subtotal, :tax_amount, :shipping_amount, :discount_amount, :total_amount,
        :currency, CAST(:shipping_address AS JSONB), CAST(:billing_address AS JSONB),
        :buyer_notes)
    RETURNING created_at
""")

_INSERT_ORDER_ITEM_SQL = text("""
    INSERT INTO order_items (order_id, product_id, product_name, product_sku,
        unit_price, quantity, total_price, product_snapshot)
    VALUES (:order_id, :product_id, :product_name, :product_sku,
        :unit_price, :quantity, :total_price, CAST(:product_snapshot AS JSONB))
""")

_ATTACH_INTENT_SQL = text("""
    UPDATE orders
    SET gateway_intent_id = :intent_id
    WHERE id = ANY(:order_ids)
""")


def _row_to_cart_item(row: Any) -> CartItem:
    quantity = Decimal(row.quantity)
    if quantity <= 0 or quantity != quantity.to_integral_value():
        raise CheckoutValidationError(
            f"cart item {row.id} has a non-whole quantity {row.quantity}"
        )
    snapshot: dict[str, Any] = {}
    if row.seller_org_id is not None:
        snapshot = jsonable_encoder(
            {
                "id": row.product_id,
                "seller_org_id": row.seller_org_id,
                "name": row.name,
                "sku": row.sku,
                "base_price": str(row.base_price) if row.base_price is not None else None,
                "sale_price": str(row.sale_price) if row.sale_price is not None else None,
                "currency": row.currency,
                "stock_quantity": row.stock_quantity,
            }
        )
    return CartItem(
        id=str(row.id),
        product_id=str(row.product_id),
        quantity=int(quantity),
        seller_org_id=str(row.seller_org_id) if row.seller_org_id is not None else None,
        product_name=row.name,
        product_sku=row.sku,
        base_price=Decimal(row.base_price) if row.base_price is not None else Decimal("0"),
        sale_price=Decimal(row.sale_price) if row.sale_price is not None else None,
        product_snapshot=snapshot,
    )


class CartRepository:
    async def get_cart_id(
        self, db: AsyncSession, buyer_org_id: str, buyer_user_id: str
    ) -> str | None:
        result = await db.execute(
            _GET_CART_ID_SQL,
            {"buyer_org_id": buyer_org_id, "buyer_user_id": buyer_user_id},
        )
        row = result.fetchone()
        return str(row.id) if row else None

    async def list_items(self, db: AsyncSession, cart_id: str) -> list[CartItem]:
        result = await db.execute(_LIST_CART_ITEMS_SQL, {"cart_id": cart_id})
        return [_row_to_cart_item(row) for row in result.fetchall()]

    async def clear_for_buyer(
        self, db: AsyncSession, buyer_org_id: str, buyer_user_id: str
    ) -> int:
        result = await db.execute(
            _CLEAR_CART_SQL,
            {"buyer_org_id": buyer_org_id, "buyer_user_id": buyer_user_id},
        )
        return result.rowcount or 0


class AddressRepository:
    async def get_buyer_address(
        self, db: AsyncSession, address_id: str, buyer_org_id: str
    ) -> dict[str, Any] | None:
        result = await db.execute(
            _GET_ADDRESS_SQL,
            {"address_id": address_id, "buyer_org_id": buyer_org_id},
        )
        row = result.fetchone()
        # jsonable_encoder turns UUID/datetime columns into JSONB-safe values
        return jsonable_encoder(dict(row._mapping)) if row else None


class OrderRepository:
    async def insert_order(self, db: AsyncSession, order: Order) -> None:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "checkout_group_id": order.checkout_group_id,
                "buyer_org_id": order.buyer_org_id,
                "buyer_user_id": order.buyer_user_id,
                "seller_org_id": order.seller_org_id,
                "status": order.status,
                "payment_status": order.payment_status,
                "subtotal": order.subtotal,
                "tax_amount": order.tax_amount,
                "shipping_amount": order.shipping_amount,
                "discount_amount": order.discount_amount,
                "total_amount": order.total_amount,
                "currency": order.currency,
                "shipping_address": json.dumps(order.shipping_address),
                "billing_address": json.dumps(order.billing_address),
                "buyer_notes": order.buyer_notes,
            },
        )
        row = result.fetchone()
        if row is not None:
            order.created_at = row.created_at

    async def insert_item(self, db: AsyncSession, item: OrderItem) -> None:
        await db.execute(
            _INSERT_ORDER_ITEM_SQL,
            {
                "order_id": item.order_id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "product_sku": item.product_sku,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "total_price": item.total_price,
                "product_snapshot": json.dumps(item.product_snapshot),
            },
        )

    async def attach_intent(
        self, db: AsyncSession, order_ids: list[str], intent_id: str
    ) -> int:
        result = await db.execute(
            _ATTACH_INTENT_SQL, {"intent_id": intent_id, "order_ids": order_ids}
        )
        return result.rowcount or 0
