# tests/integration/test_webhook_settlement_flow.py
"""Integration tests for webhook settlement against real PostgreSQL.

Exercises the SQL guards the unit tests only mirror: the processed_events
claim, the pending-only order transitions, the (intent, seller) ledger
uniqueness, the balance upsert and the GREATEST(0, ...) stock floor.

Each test seeds its own buyer, sellers, products and orders under fresh
UUIDs, so tests never see each other's rows.
"""

import asyncio
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.mk_common.errors import SignatureVerificationError
from src.mk_common.money import to_minor_units
from src.mk_payment.application.webhook import WebhookOutcome, WebhookProcessor
from src.mk_payment.domain.models import IntentLink
from src.mk_payment.infrastructure.persistence import IntentRepository
from src.mk_payment.infrastructure.stripe_client import StripeGatewayClient
from src.mk_settlement.application.best_effort import BestEffortRunner
from src.mk_settlement.application.failure import FailureHandler
from src.mk_settlement.application.settlement import SettlementHandler

pytestmark = pytest.mark.integration

CONCURRENT_DELIVERIES = 8

# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@dataclass
class SeededCheckout:
    intent_id: str
    buyer_org_id: str
    buyer_user_id: str
    # seller_org_id -> order id / split in minor units
    orders: dict[str, str] = field(default_factory=dict)
    splits: dict[str, int] = field(default_factory=dict)
    # product_id -> initial stock
    stock: dict[str, int] = field(default_factory=dict)

    @property
    def amount_minor(self) -> int:
        return sum(self.splits.values())


_INSERT_PRODUCT_SQL = text("""
    INSERT INTO products (id, seller_org_id, name, sku, base_price, stock_quantity)
    VALUES (:id, :seller_org_id, :name, :sku, :price, :stock)
""")

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, checkout_group_id, buyer_org_id, buyer_user_id,
        seller_org_id, subtotal, total_amount, currency, shipping_address, billing_address)
    VALUES (:id, :order_number, :group_id, :buyer_org_id, :buyer_user_id,
        :seller_org_id, :total, :total, 'USD', '{}'::jsonb, '{}'::jsonb)
""")

_INSERT_ITEM_SQL = text("""
    INSERT INTO order_items (order_id, product_id, product_name, unit_price, quantity, total_price)
    VALUES (:order_id, :product_id, 'Widget', :unit_price, :quantity, :total_price)
""")


async def _seed_checkout(sessions: async_sessionmaker[AsyncSession]) -> SeededCheckout:
    """Two sellers, one order each, linked to one intent.

    seller A: product A1 (stock 10) x2 at 20.00, product A2 (stock 1) x3 at 5.00
    seller B: product B1 (stock 4) x1 at 100.00
    """
    seed = SeededCheckout(
        intent_id=f"pi_it_{uuid.uuid4().hex[:16]}",
        buyer_org_id=str(uuid.uuid4()),
        buyer_user_id=str(uuid.uuid4()),
    )
    group_id = str(uuid.uuid4())
    lines = {
        "a": [("20.00", 2, 10), ("5.00", 3, 1)],
        "b": [("100.00", 1, 4)],
    }
    links: list[IntentLink] = []
    async with sessions() as db:
        for lines_for_seller in lines.values():
            seller_org_id = str(uuid.uuid4())
            order_id = str(uuid.uuid4())
            total = sum(Decimal(price) * qty for price, qty, _ in lines_for_seller)
            total_minor = to_minor_units(total)
            await db.execute(
                _INSERT_ORDER_SQL,
                {
                    "id": order_id,
                    "order_number": f"ORD-IT-{uuid.uuid4().hex[:12]}",
                    "group_id": group_id,
                    "buyer_org_id": seed.buyer_org_id,
                    "buyer_user_id": seed.buyer_user_id,
                    "seller_org_id": seller_org_id,
                    "total": total,
                },
            )
            for price, qty, stock in lines_for_seller:
                product_id = str(uuid.uuid4())
                await db.execute(
                    _INSERT_PRODUCT_SQL,
                    {
                        "id": product_id,
                        "seller_org_id": seller_org_id,
                        "name": "Widget",
                        "sku": f"SKU-{product_id[:8]}",
                        "price": Decimal(price),
                        "stock": stock,
                    },
                )
                await db.execute(
                    _INSERT_ITEM_SQL,
                    {
                        "order_id": order_id,
                        "product_id": product_id,
                        "unit_price": Decimal(price),
                        "quantity": qty,
                        "total_price": Decimal(price) * qty,
                    },
                )
                seed.stock[product_id] = stock
            seed.orders[seller_org_id] = order_id
            seed.splits[seller_org_id] = total_minor
            links.append(
                IntentLink(
                    intent_id=seed.intent_id,
                    order_id=order_id,
                    seller_org_id=seller_org_id,
                    split_amount_minor=total_minor,
                    currency="USD",
                )
            )
        await IntentRepository().save_links(db, links)
        await db.commit()
    return seed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _event(event_type: str, seed: SeededCheckout, event_id: str | None = None) -> dict:
    obj = {
        "id": seed.intent_id,
        "object": "payment_intent",
        "amount": seed.amount_minor,
        "currency": "usd",
        "status": "succeeded",
        "payment_method": "pm_card_visa",
    }
    if event_type == "payment_intent.payment_failed":
        obj["status"] = "requires_payment_method"
        obj["last_payment_error"] = {
            "code": "card_declined",
            "decline_code": "insufficient_funds",
            "message": "Your card has insufficient funds.",
        }
    return {
        "id": event_id or f"evt_it_{uuid.uuid4().hex[:16]}",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }


def _signed(payload: dict, secret: str | None = None) -> tuple[bytes, str]:
    body = json.dumps(payload)
    ts = int(time.time())
    key = (secret or settings.STRIPE_WEBHOOK_SECRET).encode()
    mac = hmac.new(key, f"{ts}.{body}".encode(), hashlib.sha256).hexdigest()
    return body.encode(), f"t={ts},v1={mac}"


def _processor(sessions: async_sessionmaker[AsyncSession]) -> WebhookProcessor:
    settlement = SettlementHandler(
        email_sender=AsyncMock(),
        emitter=AsyncMock(),
        runner=BestEffortRunner(timeout_seconds=2.0),
        frontend_url="https://shop.test",
        session_factory=sessions,
    )
    return WebhookProcessor(
        gateway=StripeGatewayClient(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        ),
        settlement=settlement,
        failure=FailureHandler(),
    )


async def _deliver(
    sessions: async_sessionmaker[AsyncSession],
    processor: WebhookProcessor,
    body: bytes,
    signature: str,
) -> WebhookOutcome:
    async with sessions() as db:
        return await processor.process(db, body, signature)


async def _stock(sessions, seed: SeededCheckout) -> dict[str, int]:
    async with sessions() as db:
        result = await db.execute(
            text("SELECT id, stock_quantity FROM products WHERE id = ANY(:ids)"),
            {"ids": list(seed.stock)},
        )
        return {str(row.id): int(row.stock_quantity) for row in result.fetchall()}


async def _balances(sessions, seed: SeededCheckout) -> dict[str, int]:
    async with sessions() as db:
        result = await db.execute(
            text(
                "SELECT seller_org_id, available_amount_minor FROM seller_balances "
                "WHERE seller_org_id = ANY(:ids)"
            ),
            {"ids": list(seed.splits)},
        )
        return {str(row.seller_org_id): int(row.available_amount_minor) for row in result}


async def _count(sessions, sql: str, params: dict) -> int:
    async with sessions() as db:
        return int((await db.execute(text(sql), params)).scalar_one())


async def _payment_statuses(sessions, seed: SeededCheckout) -> set[str]:
    async with sessions() as db:
        result = await db.execute(
            text("SELECT payment_status FROM orders WHERE id = ANY(:ids)"),
            {"ids": list(seed.orders.values())},
        )
        return {row.payment_status for row in result}


# Expected stock after one settlement: A1 10-2, A2 max(0, 1-3), B1 4-1
def _expected_stock(seed: SeededCheckout) -> dict[str, int]:
    consumed = dict(zip(seed.stock, [2, 3, 1], strict=True))
    return {pid: max(0, stock - consumed[pid]) for pid, stock in seed.stock.items()}


# ---------------------------------------------------------------------------
# TestConcurrentDelivery
# ---------------------------------------------------------------------------


class TestConcurrentDelivery:
    async def test_same_event_applied_exactly_once(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        processor = _processor(sessions)
        body, signature = _signed(_event("payment_intent.succeeded", seed))

        outcomes = await asyncio.gather(
            *(
                _deliver(sessions, processor, body, signature)
                for _ in range(CONCURRENT_DELIVERIES)
            )
        )

        statuses = [o.status for o in outcomes]
        assert statuses.count("applied") == 1
        assert statuses.count("duplicate") == CONCURRENT_DELIVERIES - 1

        assert await _payment_statuses(sessions, seed) == {"paid"}
        assert await _stock(sessions, seed) == _expected_stock(seed)
        assert await _balances(sessions, seed) == seed.splits
        assert (
            await _count(
                sessions,
                "SELECT COUNT(*) FROM transactions WHERE gateway_intent_id = :intent_id",
                {"intent_id": seed.intent_id},
            )
            == 2
        )
        assert (
            await _count(
                sessions,
                "SELECT COUNT(*) FROM processed_events WHERE payment_intent_id = :intent_id",
                {"intent_id": seed.intent_id},
            )
            == 1
        )

    async def test_stock_floors_at_zero(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        body, signature = _signed(_event("payment_intent.succeeded", seed))

        await _deliver(sessions, _processor(sessions), body, signature)

        stock = await _stock(sessions, seed)
        assert min(stock.values()) == 0
        assert all(qty >= 0 for qty in stock.values())


# ---------------------------------------------------------------------------
# TestSignature
# ---------------------------------------------------------------------------


class TestSignature:
    async def test_invalid_signature_writes_nothing(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        event = _event("payment_intent.succeeded", seed)
        body, signature = _signed(event, secret="whsec_someone_else")

        with pytest.raises(SignatureVerificationError):
            await _deliver(sessions, _processor(sessions), body, signature)

        assert (
            await _count(
                sessions,
                "SELECT COUNT(*) FROM processed_events WHERE id = :id",
                {"id": event["id"]},
            )
            == 0
        )
        assert await _payment_statuses(sessions, seed) == {"pending"}
        assert await _stock(sessions, seed) == seed.stock
        assert await _balances(sessions, seed) == {}


# ---------------------------------------------------------------------------
# TestRedelivery
# ---------------------------------------------------------------------------


class TestRedelivery:
    async def test_new_event_for_paid_intent_changes_nothing(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        processor = _processor(sessions)
        first = await _deliver(
            sessions, processor, *_signed(_event("payment_intent.succeeded", seed))
        )
        assert first.settlement is not None and first.settlement.applied
        stock_after_first = await _stock(sessions, seed)
        balances_after_first = await _balances(sessions, seed)

        # Same intent, different event id: passes the claim, hits the order guard
        second = await _deliver(
            sessions, processor, *_signed(_event("payment_intent.succeeded", seed))
        )

        assert second.settlement is not None
        assert not second.settlement.applied
        assert await _stock(sessions, seed) == stock_after_first
        assert await _balances(sessions, seed) == balances_after_first
        assert (
            await _count(
                sessions,
                "SELECT COUNT(*) FROM transactions WHERE gateway_intent_id = :intent_id",
                {"intent_id": seed.intent_id},
            )
            == 2
        )

    async def test_failure_after_paid_is_ignored(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        processor = _processor(sessions)
        await _deliver(sessions, processor, *_signed(_event("payment_intent.succeeded", seed)))

        outcome = await _deliver(
            sessions, processor, *_signed(_event("payment_intent.payment_failed", seed))
        )

        assert outcome.failure is not None and outcome.failure.failed_order_ids == []
        assert await _payment_statuses(sessions, seed) == {"paid"}


# ---------------------------------------------------------------------------
# TestPaymentFailed
# ---------------------------------------------------------------------------


class TestPaymentFailed:
    async def test_one_timeline_row_per_order(self, sessions) -> None:
        seed = await _seed_checkout(sessions)
        processor = _processor(sessions)

        await _deliver(
            sessions, processor, *_signed(_event("payment_intent.payment_failed", seed))
        )
        # a second failure event for the same intent adds no audit rows
        await _deliver(
            sessions, processor, *_signed(_event("payment_intent.payment_failed", seed))
        )

        assert await _payment_statuses(sessions, seed) == {"payment_failed"}
        for order_id in seed.orders.values():
            assert (
                await _count(
                    sessions,
                    "SELECT COUNT(*) FROM order_timeline "
                    "WHERE order_id = :order_id AND event_type = 'payment_failed'",
                    {"order_id": order_id},
                )
                == 1
            )
        assert await _stock(sessions, seed) == seed.stock
        assert await _balances(sessions, seed) == {}
        assert (
            await _count(
                sessions,
                "SELECT COUNT(*) FROM transactions WHERE gateway_intent_id = :intent_id",
                {"intent_id": seed.intent_id},
            )
            == 0
        )
