"""Repository Protocols — dependency inversion for testability.

Unit tests inject mocks that conform to these Protocols.
Infrastructure layer provides the real implementations.
"""

from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_checkout.domain.models import CartItem, Order, OrderItem


class CartRepositoryProtocol(Protocol):
    async def get_cart_id(
        self, db: AsyncSession, buyer_org_id: str, buyer_user_id: str
    ) -> str | None: ...

    async def list_items(self, db: AsyncSession, cart_id: str) -> list[CartItem]: ...

    async def clear_for_buyer(
        self, db: AsyncSession, buyer_org_id: str, buyer_user_id: str
    ) -> int: ...


class AddressRepositoryProtocol(Protocol):
    async def get_buyer_address(
        self, db: AsyncSession, address_id: str, buyer_org_id: str
    ) -> dict[str, Any] | None: ...


class OrderRepositoryProtocol(Protocol):
    async def insert_order(self, db: AsyncSession, order: Order) -> None: ...

    async def insert_item(self, db: AsyncSession, item: OrderItem) -> None: ...

    async def attach_intent(
        self, db: AsyncSession, order_ids: list[str], intent_id: str
    ) -> int: ...
