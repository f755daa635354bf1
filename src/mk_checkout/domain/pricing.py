"""Shipping/tax pricing for a seller group.

Rate computation is out of scope for this service: FlatRatePricing is the
placeholder policy (flat shipping + percentage tax). Any object satisfying
PricingPolicy can be injected instead.
"""

from decimal import Decimal
from typing import Protocol

from src.mk_common.money import quantize_amount


class PricingPolicy(Protocol):
    def shipping_for(self, seller_org_id: str, subtotal: Decimal) -> Decimal: ...

    def tax_for(self, seller_org_id: str, subtotal: Decimal) -> Decimal: ...


class FlatRatePricing:
    def __init__(self, shipping: Decimal, tax_rate: Decimal) -> None:
        if shipping < 0 or tax_rate < 0:
            raise ValueError("shipping and tax_rate must be non-negative")
        self._shipping = quantize_amount(shipping)
        self._tax_rate = tax_rate

    def shipping_for(self, seller_org_id: str, subtotal: Decimal) -> Decimal:
        return self._shipping

    def tax_for(self, seller_org_id: str, subtotal: Decimal) -> Decimal:
        # Quantized here so every group total is exact in minor units
        return quantize_amount(subtotal * self._tax_rate)
