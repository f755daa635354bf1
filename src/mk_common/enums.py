"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class OrderStatus(str, Enum):
    """Fulfillment lifecycle. Only PENDING is set by checkout."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Two-edge terminal machine: PENDING -> PAID | PAYMENT_FAILED."""
    PENDING = "pending"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"


class AccountType(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    GOVERNMENT = "government"


class GatewayEventType(str, Enum):
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"


class TimelineEventType(str, Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


class TransactionType(str, Enum):
    SALE = "sale"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"


class NotificationEventType(str, Enum):
    ORDER_PAID = "order_paid"
