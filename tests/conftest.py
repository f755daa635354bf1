"""Shared test fixtures.

Settings require the JWT and Stripe secrets; defaults are injected here before
anything imports config.settings.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-123")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_dummy")

from collections.abc import Callable  # noqa: E402
from decimal import Decimal  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from src.mk_checkout.domain.models import CartItem  # noqa: E402


def _make_cart_item(
    item_id: str,
    seller_org_id: str | None,
    base_price: str,
    quantity: int = 1,
    sale_price: str | None = None,
    product_id: str | None = None,
) -> CartItem:
    return CartItem(
        id=item_id,
        product_id=product_id or f"prod-{item_id}",
        quantity=quantity,
        seller_org_id=seller_org_id,
        product_name=f"Product {item_id}",
        product_sku=f"SKU-{item_id}",
        base_price=Decimal(base_price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
    )


@pytest.fixture
def make_cart_item() -> Callable[..., CartItem]:
    """Factory fixture: make_cart_item("i1", "seller-a", "10.00", quantity=2)."""
    return _make_cart_item


@pytest.fixture
def db() -> MagicMock:
    """AsyncSession stand-in: execute/commit/rollback are awaitable."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session
