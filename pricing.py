"""
Order totals.

``compute_totals`` is the single pricing rule used for the cart display and
for the persisted order; the server always recomputes from line items and
never trusts a submitted total.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from schemas import CartLineItem, OrderItem, PricingOptions, Totals

CENT = Decimal("0.01")


def compute_totals(items: Iterable[Union[CartLineItem, OrderItem]], opts: Optional[PricingOptions] = None) -> Totals:
    opts = opts or PricingOptions()
    subtotal = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
    # Free shipping only strictly above the threshold
    shipping = Decimal("0") if subtotal > opts.free_shipping_threshold else opts.flat_shipping_fee
    tax = subtotal * opts.tax_rate
    return Totals(subtotal=subtotal, shipping=shipping, tax=tax, total=subtotal + shipping + tax)


def display_amount(value: Decimal) -> str:
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


def display_totals(totals: Totals) -> dict:
    return {
        "subtotal": display_amount(totals.subtotal),
        "shipping": display_amount(totals.shipping),
        "tax": display_amount(totals.tax),
        "total": display_amount(totals.total),
    }
