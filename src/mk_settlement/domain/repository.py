"""Repository / notifier Protocols for settlement.

Unit tests inject mocks that conform to these Protocols.
Infrastructure layer provides the real implementations.
"""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_settlement.domain.models import StockLine, TransitionedOrder


class SettlementRepositoryProtocol(Protocol):
    async def mark_paid(
        self,
        db: AsyncSession,
        order_ids: list[str],
        payment_method_id: str | None,
        paid_at: datetime,
    ) -> list[TransitionedOrder]:
        """Move pending orders to paid; return only the rows that transitioned."""
        ...

    async def mark_failed(
        self, db: AsyncSession, order_ids: list[str]
    ) -> list[TransitionedOrder]: ...

    async def list_stock_lines(
        self, db: AsyncSession, order_ids: list[str]
    ) -> list[StockLine]: ...

    async def decrement_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None: ...

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
        """Insert the (intent, seller) ledger row. False if it already existed."""
        ...

    async def credit_balance(
        self, db: AsyncSession, seller_org_id: str, amount_minor: int, currency: str
    ) -> int:
        """Upsert-increment available balance; return the new balance."""
        ...


class ContactDirectoryProtocol(Protocol):
    async def get_user_contact(
        self, db: AsyncSession, user_id: str
    ) -> dict[str, Any] | None: ...

    async def list_org_user_ids(self, db: AsyncSession, organization_id: str) -> list[str]: ...


class EmailSenderProtocol(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str) -> None: ...


class NotificationEmitterProtocol(Protocol):
    async def emit(
        self,
        event_type: str,
        organization_id: str,
        payload: dict[str, Any],
        recipients: list[str],
    ) -> str: ...
