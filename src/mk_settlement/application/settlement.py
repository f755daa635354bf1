"""SettlementHandler — financial effects of a succeeded payment intent.

apply() is the critical part and runs inside the webhook transaction, after
the event claim:

  a. pending -> paid for every linked order (guarded UPDATE ... RETURNING)
  b. stock decrement for the orders that transitioned in this call
  c. one sale transaction per seller, and a balance credit only when that
     ledger row was actually inserted

Only orders that moved in this call feed (b) and (c), so applying the same
intent twice (redelivery under a new event id, manual replay) changes nothing.

follow_up() runs after commit: buyer receipt email, per-seller notification,
cart clear. Each step is bounded by BestEffortRunner and never raises; the
database steps each run on a short-lived session of their own.
"""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mk_checkout.domain.repository import CartRepositoryProtocol
from src.mk_checkout.infrastructure.persistence import CartRepository
from src.mk_checkout.infrastructure.timeline import write_timeline_entry
from src.mk_common.database import async_session_factory
from src.mk_common.datetime_utils import to_iso, utc_now
from src.mk_common.enums import NotificationEventType, TimelineEventType
from src.mk_common.id_generator import generate_transaction_number
from src.mk_common.money import minor_to_display
from src.mk_payment.domain.models import GatewayIntent
from src.mk_payment.domain.repository import IntentRepositoryProtocol
from src.mk_payment.infrastructure.persistence import IntentRepository
from src.mk_settlement.application.best_effort import BestEffortRunner, TaskOutcome
from src.mk_settlement.domain.models import (
    SellerCredit,
    SettlementResult,
    aggregate_quantities,
)
from src.mk_settlement.domain.repository import (
    ContactDirectoryProtocol,
    EmailSenderProtocol,
    NotificationEmitterProtocol,
    SettlementRepositoryProtocol,
)
from src.mk_settlement.infrastructure.persistence import ContactDirectory, SettlementRepository

logger = logging.getLogger(__name__)


class SettlementHandler:
    def __init__(
        self,
        email_sender: EmailSenderProtocol,
        emitter: NotificationEmitterProtocol,
        runner: BestEffortRunner,
        frontend_url: str,
        repo: SettlementRepositoryProtocol | None = None,
        intent_repo: IntentRepositoryProtocol | None = None,
        contacts: ContactDirectoryProtocol | None = None,
        cart_repo: CartRepositoryProtocol | None = None,
        transaction_numbers: Callable[[], str] = generate_transaction_number,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._email = email_sender
        self._emitter = emitter
        self._runner = runner
        self._frontend_url = frontend_url.rstrip("/")
        self._repo: SettlementRepositoryProtocol = repo or SettlementRepository()
        self._intents: IntentRepositoryProtocol = intent_repo or IntentRepository()
        self._contacts: ContactDirectoryProtocol = contacts or ContactDirectory()
        self._carts: CartRepositoryProtocol = cart_repo or CartRepository()
        self._next_tx_number = transaction_numbers
        self._sessions = session_factory or async_session_factory

    # ------------------------------------------------------------------
    # Critical: inside the webhook transaction
    # ------------------------------------------------------------------

    async def apply(self, db: AsyncSession, intent: GatewayIntent) -> SettlementResult:
        links = await self._intents.get_links(db, intent.id)
        currency = (links[0].currency if links else intent.currency).upper()
        result = SettlementResult(
            intent_id=intent.id,
            currency=currency,
            linked_order_ids=[link.order_id for link in links],
        )
        if not links:
            logger.warning("No orders linked to intent %s; nothing to settle", intent.id)
            return result

        linked_total = sum(link.split_amount_minor for link in links)
        if intent.amount_minor and intent.amount_minor != linked_total:
            result.amount_mismatch = True
            logger.error(
                "Intent %s amount %d differs from linked splits %d; settling by splits",
                intent.id,
                intent.amount_minor,
                linked_total,
            )

        # a. state machine
        paid_at = utc_now()
        result.paid_at = paid_at
        result.paid_orders = await self._repo.mark_paid(
            db, result.linked_order_ids, intent.payment_method_id, paid_at
        )
        if not result.paid_orders:
            logger.info(
                "Intent %s: all %d linked order(s) already terminal; no effects",
                intent.id,
                len(links),
            )
            return result

        paid_ids = {o.id for o in result.paid_orders}
        split_by_order = {link.order_id: link.split_amount_minor for link in links}
        for order in result.paid_orders:
            await write_timeline_entry(
                order_id=order.id,
                event_type=TimelineEventType.PAYMENT_SUCCEEDED.value,
                description="Payment captured",
                metadata={
                    "payment_intent_id": intent.id,
                    "amount_minor": split_by_order.get(order.id, 0),
                    "currency": currency,
                    "paid_at": to_iso(paid_at),
                },
                created_by=None,
                db=db,
            )

        # b. stock; fixed product order so concurrent settlements lock rows alike
        lines = await self._repo.list_stock_lines(db, sorted(paid_ids))
        result.stock_decrements = aggregate_quantities(lines)
        for product_id in sorted(result.stock_decrements):
            await self._repo.decrement_stock(db, product_id, result.stock_decrements[product_id])

        # c. ledger + balance
        for seller_org_id, orders in sorted(result.orders_by_seller().items()):
            order_ids = [o.id for o in orders]
            credit = SellerCredit(
                seller_org_id=seller_org_id,
                amount_minor=sum(split_by_order.get(oid, 0) for oid in order_ids),
                order_ids=order_ids,
                transaction_number=self._next_tx_number(),
            )
            credit.credited = await self._repo.insert_sale_transaction(
                db,
                transaction_number=str(credit.transaction_number),
                seller_org_id=seller_org_id,
                amount_minor=credit.amount_minor,
                currency=currency,
                intent_id=intent.id,
                order_ids=order_ids,
                processed_at=paid_at,
            )
            if credit.credited:
                credit.balance_after_minor = await self._repo.credit_balance(
                    db, seller_org_id, credit.amount_minor, currency
                )
            else:
                logger.warning(
                    "Ledger row for intent %s / seller %s already exists; balance not credited",
                    intent.id,
                    seller_org_id,
                )
            result.credits.append(credit)

        logger.info(
            "Settled intent %s: %d order(s) paid, %d product(s) decremented, %d seller(s) credited",
            intent.id,
            len(result.paid_orders),
            len(result.stock_decrements),
            sum(1 for c in result.credits if c.credited),
        )
        return result

    # ------------------------------------------------------------------
    # Best-effort: after commit
    # ------------------------------------------------------------------

    async def follow_up(self, result: SettlementResult) -> list[TaskOutcome]:
        if not result.applied:
            return []
        buyer_org_id = str(result.buyer_org_id)
        buyer_user_id = str(result.buyer_user_id)
        outcomes: list[TaskOutcome] = []

        # Each DB step opens its own session: a failed or cancelled query
        # aborts only that step's transaction, never the next one's.
        contact = await self._runner.run("buyer_contact", self._lookup_contact(buyer_user_id))
        outcomes.append(contact)
        recipients: dict[str, list[str]] = {}
        for seller_org_id in result.orders_by_seller():
            lookup = await self._runner.run(
                f"seller_recipients:{seller_org_id}", self._lookup_recipients(seller_org_id)
            )
            outcomes.append(lookup)
            if lookup.ok and lookup.value:
                recipients[seller_org_id] = lookup.value
        outcomes.append(
            await self._runner.run("cart_clear", self._clear_cart(buyer_org_id, buyer_user_id))
        )

        network_steps: dict[str, Any] = {}
        email = (contact.value or {}).get("email") if contact.ok else None
        if email:
            network_steps["buyer_email"] = self._send_receipt(email, result)
        else:
            logger.info("No email on file for buyer %s; receipt skipped", buyer_user_id)
        for seller_org_id, user_ids in recipients.items():
            network_steps[f"seller_notify:{seller_org_id}"] = self._notify_seller(
                seller_org_id, user_ids, result
            )
        outcomes.extend(await self._runner.run_all(network_steps))

        failed = [o.name for o in outcomes if not o.ok]
        if failed:
            logger.warning("Intent %s follow-up incomplete: %s", result.intent_id, ", ".join(failed))
        return outcomes

    async def _lookup_contact(self, buyer_user_id: str) -> dict[str, Any] | None:
        async with self._sessions() as session:
            return await self._contacts.get_user_contact(session, buyer_user_id)

    async def _lookup_recipients(self, seller_org_id: str) -> list[str]:
        async with self._sessions() as session:
            return await self._contacts.list_org_user_ids(session, seller_org_id)

    async def _clear_cart(self, buyer_org_id: str, buyer_user_id: str) -> int:
        async with self._sessions() as session:
            try:
                removed = await self._carts.clear_for_buyer(session, buyer_org_id, buyer_user_id)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return removed

    async def _send_receipt(self, email: str, result: SettlementResult) -> None:
        first_order_id = result.paid_orders[0].id
        link = f"{self._frontend_url}/buyer/order-confirmation/{first_order_id}"
        total = minor_to_display(sum(c.amount_minor for c in result.credits), result.currency)
        numbers = ", ".join(o.order_number for o in result.paid_orders)
        await self._email.send(
            email,
            "Your order has been placed",
            f"<p>Thanks for your order!</p><p>Order(s): {numbers}. Total paid: {total}.</p>"
            f'<p>You can view your order here: <a href="{link}">{link}</a></p>',
            f"Thanks for your order! Order(s): {numbers}. Total paid: {total}. View: {link}",
        )

    async def _notify_seller(
        self, seller_org_id: str, user_ids: list[str], result: SettlementResult
    ) -> str:
        orders = result.orders_by_seller()[seller_org_id]
        return await self._emitter.emit(
            NotificationEventType.ORDER_PAID.value,
            seller_org_id,
            {
                "title": "New paid order",
                "body": "An order has been paid and is ready to fulfill.",
                "order_ids": [o.id for o in orders],
                "order_numbers": [o.order_number for o in orders],
                "category": "orders",
                "priority": "high",
            },
            user_ids,
        )
