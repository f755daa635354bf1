"""Payment repositories: intent↔order mapping and processed-event ledger.

The processed_events claim is a single ``INSERT ... ON CONFLICT DO NOTHING
RETURNING id``. Zero rows back means another delivery already owns (or is
committing) the event id. Under PostgreSQL a concurrent insert of the same id
blocks until the first transaction finishes: commit → conflict here, rollback
→ this insert wins. Never replace this with SELECT-then-INSERT.

Transaction ownership: the CALLER commits or rolls back.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.errors import DuplicateEventError
from src.mk_payment.domain.models import IntentLink, ProcessedEvent

# ---------------------------------------------------------------------------
# SQL: payment_intent_orders
# ---------------------------------------------------------------------------

_INSERT_LINK_SQL = text("""
    INSERT INTO payment_intent_orders
        (payment_intent_id, order_id, seller_org_id, split_amount_minor, currency)
    VALUES (:payment_intent_id, :order_id, :seller_org_id, :split_amount_minor, :currency)
""")

_GET_LINKS_SQL = text("""
    SELECT payment_intent_id, order_id, seller_org_id, split_amount_minor, currency
    FROM payment_intent_orders
    WHERE payment_intent_id = :payment_intent_id
    ORDER BY id
""")

# ---------------------------------------------------------------------------
# SQL: processed_events
# ---------------------------------------------------------------------------

_CLAIM_EVENT_SQL = text("""
    INSERT INTO processed_events (id, type, payment_intent_id, payload)
    VALUES (:id, :type, :payment_intent_id, CAST(:payload AS JSONB))
    ON CONFLICT (id) DO NOTHING
    RETURNING id
""")


def _row_to_link(row: Any) -> IntentLink:
    return IntentLink(
        intent_id=row.payment_intent_id,
        order_id=str(row.order_id),
        seller_org_id=str(row.seller_org_id),
        split_amount_minor=int(row.split_amount_minor),
        currency=row.currency,
    )


class IntentRepository:
    async def save_links(self, db: AsyncSession, links: list[IntentLink]) -> None:
        if not links:
            return
        await db.execute(
            _INSERT_LINK_SQL,
            [
                {
                    "payment_intent_id": link.intent_id,
                    "order_id": link.order_id,
                    "seller_org_id": link.seller_org_id,
                    "split_amount_minor": link.split_amount_minor,
                    "currency": link.currency,
                }
                for link in links
            ],
        )

    async def get_links(self, db: AsyncSession, intent_id: str) -> list[IntentLink]:
        result = await db.execute(_GET_LINKS_SQL, {"payment_intent_id": intent_id})
        return [_row_to_link(row) for row in result.fetchall()]


class ProcessedEventRepository:
    """IdempotencyStore — durable ledger of gateway event ids already applied."""

    async def claim(self, db: AsyncSession, event: ProcessedEvent, payload: str) -> None:
        result = await db.execute(
            _CLAIM_EVENT_SQL,
            {
                "id": event.id,
                "type": event.type,
                "payment_intent_id": event.payment_intent_id,
                "payload": payload,
            },
        )
        if result.fetchone() is None:
            raise DuplicateEventError(event.id)
