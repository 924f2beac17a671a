"""
Checkout total calculator.

Pure functions over cart lines and an applied discount decision. Amounts
round half-up to the cent at the same points as the server, so the figure
shown at checkout is the figure charged.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from .cart import CartItem
from .types import DiscountDecision

TAX_RATE = Decimal("0.08")
CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    final_total: Decimal
    tax: Decimal
    grand_total: Decimal


def round_money(value: Number) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((round_money(item.price) * item.quantity for item in items), Decimal("0.00"))


def calculate_discount(
    amount: Number,
    decision: Optional[DiscountDecision],
) -> tuple[Decimal, Decimal]:
    """Return ``(discount_amount, final_total)`` for a subtotal.

    Percentage discounts take ``value`` percent of the subtotal; fixed
    discounts are clamped so the final total never goes below zero.
    """
    amount = round_money(amount)
    if decision is None or not decision.valid or decision.discount_value is None:
        return Decimal("0.00"), amount

    value = Decimal(str(decision.discount_value))
    if decision.discount_type == "percentage":
        discount = round_money(amount * value / 100)
    else:
        discount = round_money(value)
    discount = max(Decimal("0.00"), min(discount, amount))
    return discount, amount - discount


def compute_order_totals(
    items: Iterable[CartItem],
    decision: Optional[DiscountDecision] = None,
) -> OrderTotals:
    """Subtotal, discount, tax on the discounted amount, and grand total."""
    sub = subtotal(items)
    discount, final = calculate_discount(sub, decision)
    tax = round_money(final * TAX_RATE)
    return OrderTotals(
        subtotal=sub,
        discount_amount=discount,
        final_total=final,
        tax=tax,
        grand_total=final + tax,
    )
