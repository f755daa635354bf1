"""Domain models for mk_settlement — pure dataclasses, no SQLAlchemy dependency."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class TransitionedOrder:
    """An order whose payment_status moved out of pending in THIS call."""

    id: str
    order_number: str
    buyer_org_id: str
    buyer_user_id: str
    seller_org_id: str


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


@dataclass
class SellerCredit:
    seller_org_id: str
    amount_minor: int
    order_ids: list[str]
    transaction_number: str | None = None
    # False when the (intent, seller) ledger row already existed
    credited: bool = False
    balance_after_minor: int | None = None


@dataclass
class SettlementResult:
    intent_id: str
    currency: str
    linked_order_ids: list[str]
    paid_orders: list[TransitionedOrder] = field(default_factory=list)
    stock_decrements: dict[str, int] = field(default_factory=dict)
    credits: list[SellerCredit] = field(default_factory=list)
    paid_at: datetime | None = None
    # gateway amount disagreed with the linked splits; sellers were still credited
    amount_mismatch: bool = False

    @property
    def applied(self) -> bool:
        """True when this call moved at least one order to paid."""
        return bool(self.paid_orders)

    @property
    def buyer_org_id(self) -> str | None:
        return self.paid_orders[0].buyer_org_id if self.paid_orders else None

    @property
    def buyer_user_id(self) -> str | None:
        return self.paid_orders[0].buyer_user_id if self.paid_orders else None

    def orders_by_seller(self) -> dict[str, list[TransitionedOrder]]:
        grouped: dict[str, list[TransitionedOrder]] = {}
        for order in self.paid_orders:
            grouped.setdefault(order.seller_org_id, []).append(order)
        return grouped


@dataclass
class FailureResult:
    intent_id: str
    linked_order_ids: list[str]
    failed_order_ids: list[str] = field(default_factory=list)
    failure_code: str | None = None
    failure_message: str | None = None


def aggregate_quantities(lines: Iterable[StockLine]) -> dict[str, int]:
    """Sum quantities per product; zero/negative lines are dropped."""
    totals: dict[str, int] = {}
    for line in lines:
        if line.quantity <= 0:
            continue
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals
