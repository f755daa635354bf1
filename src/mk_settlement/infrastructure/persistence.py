"""Settlement repositories — order state machine, stock, ledger, balances.

Every state change is a guarded UPDATE (``WHERE payment_status = 'pending'``)
with RETURNING, so the caller learns exactly which orders moved in THIS
transaction. Stock and credit are derived from those rows only.

Transaction ownership: the CALLER (WebhookProcessor) commits or rolls back.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import PaymentStatus, TransactionStatus, TransactionType
from src.mk_settlement.domain.models import StockLine, TransitionedOrder

# ---------------------------------------------------------------------------
# SQL: orders
# ---------------------------------------------------------------------------

_MARK_PAID_SQL = text("""
    UPDATE orders
    SET payment_status = :paid,
        paid_at = :paid_at,
        gateway_payment_method_id = COALESCE(:payment_method_id, gateway_payment_method_id)
    WHERE id = ANY(:order_ids) AND payment_status = :pending
    RETURNING id, order_number, buyer_org_id, buyer_user_id, seller_org_id
""")

_MARK_FAILED_SQL = text("""
    UPDATE orders
    SET payment_status = :failed
    WHERE id = ANY(:order_ids) AND payment_status = :pending
    RETURNING id, order_number, buyer_org_id, buyer_user_id, seller_org_id
""")

_LIST_STOCK_LINES_SQL = text("""
    SELECT product_id, quantity
    FROM order_items
    WHERE order_id = ANY(:order_ids)
""")

# ---------------------------------------------------------------------------
# SQL: products (collaborator table)
# ---------------------------------------------------------------------------

_DECREMENT_STOCK_SQL = text("""
    UPDATE products
    SET stock_quantity = GREATEST(0, stock_quantity - :quantity)
    WHERE id = :product_id
""")

# ---------------------------------------------------------------------------
# SQL: transactions / seller_balances
# ---------------------------------------------------------------------------

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO transactions (transaction_number, seller_org_id, type, status,
        amount_minor, platform_fee_minor, net_amount_minor, currency,
        payment_method, gateway_intent_id, description, metadata, processed_at)
    VALUES (:transaction_number, :seller_org_id, :type, :status,
        :amount_minor, 0, :amount_minor, :currency,
        'card', :gateway_intent_id, 'Order payment captured',
        CAST(:metadata AS JSONB), :processed_at)
    ON CONFLICT (gateway_intent_id, seller_org_id) DO NOTHING
    RETURNING id
""")

_CREDIT_BALANCE_SQL = text("""
    INSERT INTO seller_balances (seller_org_id, available_amount_minor, currency)
    VALUES (:seller_org_id, :amount_minor, :currency)
    ON CONFLICT (seller_org_id) DO UPDATE
    SET available_amount_minor =
            seller_balances.available_amount_minor + EXCLUDED.available_amount_minor,
        updated_at = NOW()
    RETURNING available_amount_minor
""")

# ---------------------------------------------------------------------------
# SQL: contacts (collaborator tables)
# ---------------------------------------------------------------------------

_GET_USER_CONTACT_SQL = text("""
    SELECT id, email, fullname FROM users WHERE id = :user_id
""")

_LIST_ORG_USERS_SQL = text("""
    SELECT user_id FROM organization_users
    WHERE organization_id = :organization_id
    ORDER BY user_id
""")


def _row_to_transitioned(row: Any) -> TransitionedOrder:
    return TransitionedOrder(
        id=str(row.id),
        order_number=row.order_number,
        buyer_org_id=str(row.buyer_org_id),
        buyer_user_id=str(row.buyer_user_id),
        seller_org_id=str(row.seller_org_id),
    )


class SettlementRepository:
    async def mark_paid(
        self,
        db: AsyncSession,
        order_ids: list[str],
        payment_method_id: str | None,
        paid_at: datetime,
    ) -> list[TransitionedOrder]:
        result = await db.execute(
            _MARK_PAID_SQL,
            {
                "paid": PaymentStatus.PAID.value,
                "pending": PaymentStatus.PENDING.value,
                "paid_at": paid_at,
                "payment_method_id": payment_method_id,
                "order_ids": order_ids,
            },
        )
        return [_row_to_transitioned(row) for row in result.fetchall()]

    async def mark_failed(
        self, db: AsyncSession, order_ids: list[str]
    ) -> list[TransitionedOrder]:
        result = await db.execute(
            _MARK_FAILED_SQL,
            {
                "failed": PaymentStatus.PAYMENT_FAILED.value,
                "pending": PaymentStatus.PENDING.value,
                "order_ids": order_ids,
            },
        )
        return [_row_to_transitioned(row) for row in result.fetchall()]

    async def list_stock_lines(
        self, db: AsyncSession, order_ids: list[str]
    ) -> list[StockLine]:
        if not order_ids:
            return []
        result = await db.execute(_LIST_STOCK_LINES_SQL, {"order_ids": order_ids})
        return [
            StockLine(product_id=str(row.product_id), quantity=int(row.quantity))
            for row in result.fetchall()
        ]

    async def decrement_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None:
        await db.execute(
            _DECREMENT_STOCK_SQL, {"product_id": product_id, "quantity": quantity}
        )

    async def insert_sale_transaction(
        self,
        db: AsyncSession,
        transaction_number: str,
        seller_org_id: str,
        amount_minor: int,
        currency: str,
        intent_id: str,
        order_ids: list[str],
        processed_at: datetime,
    ) -> bool:
        result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "transaction_number": transaction_number,
                "seller_org_id": seller_org_id,
                "type": TransactionType.SALE.value,
                "status": TransactionStatus.COMPLETED.value,
                "amount_minor": amount_minor,
                "currency": currency.upper(),
                "gateway_intent_id": intent_id,
                "metadata": json.dumps({"order_ids": order_ids}),
                "processed_at": processed_at,
            },
        )
        return result.fetchone() is not None

    async def credit_balance(
        self, db: AsyncSession, seller_org_id: str, amount_minor: int, currency: str
    ) -> int:
        result = await db.execute(
            _CREDIT_BALANCE_SQL,
            {
                "seller_org_id": seller_org_id,
                "amount_minor": amount_minor,
                "currency": currency.upper(),
            },
        )
        return int(result.scalar_one())


class ContactDirectory:
    """Read-only lookups against the platform's users / organization_users."""

    async def get_user_contact(
        self, db: AsyncSession, user_id: str
    ) -> dict[str, Any] | None:
        result = await db.execute(_GET_USER_CONTACT_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            return None
        return {"id": str(row.id), "email": row.email, "fullname": row.fullname}

    async def list_org_user_ids(self, db: AsyncSession, organization_id: str) -> list[str]:
        result = await db.execute(_LIST_ORG_USERS_SQL, {"organization_id": organization_id})
        return [str(row.user_id) for row in result.fetchall()]
