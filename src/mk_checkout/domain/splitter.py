"""CartSplitter — group cart lines by owning seller and price each group."""

import logging
from decimal import Decimal

from src.mk_checkout.domain.models import CartItem, SellerGroup
from src.mk_checkout.domain.pricing import PricingPolicy
from src.mk_common.errors import EmptyCartError
from src.mk_common.money import quantize_amount

logger = logging.getLogger(__name__)


def split_cart(items: list[CartItem], pricing: PricingPolicy) -> dict[str, SellerGroup]:
    """Return seller_org_id -> SellerGroup, in first-seen seller order.

    Items without a seller reference are excluded (and logged), never counted
    into any group's totals. Raises EmptyCartError when nothing is left.
    """
    if not items:
        raise EmptyCartError()

    by_seller: dict[str, list[CartItem]] = {}
    for item in items:
        if not item.seller_org_id:
            logger.warning(
                "Excluding cart item %s (product %s): no seller reference",
                item.id,
                item.product_id,
            )
            continue
        by_seller.setdefault(item.seller_org_id, []).append(item)

    if not by_seller:
        raise EmptyCartError("Cart has no purchasable items")

    groups: dict[str, SellerGroup] = {}
    for seller_org_id, seller_items in by_seller.items():
        subtotal = quantize_amount(
            sum((it.line_total for it in seller_items), Decimal("0"))
        )
        groups[seller_org_id] = SellerGroup(
            seller_org_id=seller_org_id,
            items=seller_items,
            subtotal=subtotal,
            shipping_amount=pricing.shipping_for(seller_org_id, subtotal),
            tax_amount=pricing.tax_for(seller_org_id, subtotal),
        )
    return groups
