"""Protocols for the payment gateway and payment persistence.

Unit tests inject fakes/mocks conforming to these; StripeGatewayClient and
the repositories in mk_payment.infrastructure are the real implementations.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_payment.domain.models import (
    CreatedIntent,
    GatewayEvent,
    IntentLink,
    ProcessedEvent,
)


class PaymentGatewayProtocol(Protocol):
    @property
    def currency(self) -> str: ...

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> CreatedIntent: ...

    def construct_event(self, raw_body: bytes, signature: str | None) -> GatewayEvent: ...


class IntentRepositoryProtocol(Protocol):
    async def save_links(self, db: AsyncSession, links: list[IntentLink]) -> None: ...

    async def get_links(self, db: AsyncSession, intent_id: str) -> list[IntentLink]: ...


class ProcessedEventRepositoryProtocol(Protocol):
    async def claim(self, db: AsyncSession, event: ProcessedEvent, payload: str) -> None:
        """Atomically claim the event id. Raises DuplicateEventError if taken."""
        ...
