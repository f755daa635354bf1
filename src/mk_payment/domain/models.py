"""Domain models for mk_payment — pure dataclasses, no SQLAlchemy / Stripe dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CreatedIntent:
    """What the gateway hands back when an intent is created."""

    id: str
    client_secret: str
    amount_minor: int
    currency: str
    status: str = "requires_payment_method"


@dataclass(frozen=True)
class GatewayIntent:
    """PaymentIntent as carried inside a webhook event."""

    id: str
    amount_minor: int
    currency: str
    status: str
    payment_method_id: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    created: int
    intent: GatewayIntent | None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IntentLink:
    """One payment_intent_orders row: intent -> order with its seller split."""

    intent_id: str
    order_id: str
    seller_org_id: str
    split_amount_minor: int
    currency: str


@dataclass
class PaymentIntentRecord:
    intent_id: str
    amount_minor: int
    currency: str
    order_ids: list[str]
    splits: dict[str, int]  # seller_org_id -> minor units

    @property
    def splits_total(self) -> int:
        return sum(self.splits.values())

    @property
    def is_balanced(self) -> bool:
        return self.splits_total == self.amount_minor


@dataclass(frozen=True)
class CheckoutIntent:
    client_secret: str
    record: PaymentIntentRecord


@dataclass
class ProcessedEvent:
    id: str
    type: str
    payment_intent_id: str | None
    received_at: datetime | None = None
