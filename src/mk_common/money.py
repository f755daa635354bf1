"""Decimal/minor-unit conversion for checkout and settlement.

Order amounts are Decimal (NUMERIC(12,2) in the DB). Anything that reaches the
payment gateway or the seller ledger is int minor units (cents).
Rounding is ROUND_HALF_UP, applied per seller total BEFORE summing.
"""

from decimal import ROUND_HALF_UP, Decimal

MINOR_UNITS_PER_MAJOR = 100
_CENT = Decimal("0.01")


def quantize_amount(amount: Decimal) -> Decimal:
    """Round a Decimal amount to two places: Decimal('1.005') -> Decimal('1.01')."""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit Decimal to int minor units: Decimal('12.345') -> 1235."""
    return int((amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def minor_to_display(minor: int, currency: str) -> str:
    """Display string for emails/logs: (123456, 'usd') -> 'USD 1,234.56'."""
    sign = "-" if minor < 0 else ""
    abs_minor = abs(minor)
    return f"{sign}{currency.upper()} {abs_minor // 100:,}.{abs_minor % 100:02d}"
