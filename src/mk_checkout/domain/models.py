"""Domain models for mk_checkout — pure dataclasses, no SQLAlchemy dependency."""

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass
class CartItem:
    id: str
    product_id: str
    quantity: int
    # Product snapshot (None when the product row is gone or unlinked)
    seller_org_id: str | None
    product_name: str | None = None
    product_sku: str | None = None
    base_price: Decimal = Decimal("0")
    sale_price: Decimal | None = None
    product_snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def unit_price(self) -> Decimal:
        # A zero/NULL sale price means "no sale"
        return self.sale_price if self.sale_price else self.base_price

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class SellerGroup:
    seller_org_id: str
    items: list[CartItem]
    subtotal: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.shipping_amount + self.tax_amount - self.discount_amount


@dataclass(frozen=True)
class AddressSnapshot:
    """Immutable copy of a buyer address row taken at checkout time."""

    address_id: str
    data: dict[str, Any]

    @classmethod
    def capture(cls, address_id: str, row: dict[str, Any]) -> "AddressSnapshot":
        return cls(address_id=address_id, data=deepcopy(row))

    def to_json(self) -> dict[str, Any]:
        return deepcopy(self.data)


@dataclass
class OrderItem:
    order_id: str
    product_id: str
    product_name: str | None
    product_sku: str | None
    unit_price: Decimal
    quantity: int
    product_snapshot: dict[str, Any] = field(default_factory=dict)
    total_price: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.total_price = self.unit_price * self.quantity


@dataclass
class Order:
    id: str
    order_number: str
    checkout_group_id: str
    buyer_org_id: str
    buyer_user_id: str
    seller_org_id: str
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    shipping_address: dict[str, Any]
    billing_address: dict[str, Any]
    status: str = "pending"
    payment_status: str = "pending"
    buyer_notes: str | None = None
    gateway_intent_id: str | None = None
    gateway_payment_method_id: str | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None
    items: list[OrderItem] = field(default_factory=list)
