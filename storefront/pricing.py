"""
Authoritative order pricing, computed in integer cents.

This is the figure the customer is charged. The client computes the same
totals for display; both sides round half-up to the cent at the same
points so identical inputs give identical results.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from . import settings
from .models import DiscountType

Number = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class PricedTotals:
    """Order totals in cents."""
    subtotal: int
    discount: int
    tax: int
    total: int

    @property
    def taxable(self) -> int:
        return self.subtotal - self.discount

    def as_amounts(self) -> dict[str, Decimal]:
        """Totals as dollar amounts, for storage and responses."""
        return {
            "subtotal": from_cents(self.subtotal),
            "discount_amount": from_cents(self.discount),
            "tax": from_cents(self.tax),
            "total": from_cents(self.total),
        }


def _decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_cents(amount: Number) -> int:
    """Convert a dollar amount to whole cents, rounding half-up."""
    return int((_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def discount_cents(
    subtotal: int,
    discount_type: Optional[str],
    discount_value: Optional[Number],
) -> int:
    """Discount in cents for a subtotal; a fixed discount never exceeds it."""
    if not discount_type or discount_value is None:
        return 0
    value = _decimal(discount_value)
    if discount_type == DiscountType.PERCENTAGE.value:
        amount = (Decimal(subtotal) * value / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return max(0, min(int(amount), subtotal))
    return max(0, min(to_cents(value), subtotal))


def price_order(
    lines: Iterable[tuple[Number, int]],
    discount_type: Optional[str] = None,
    discount_value: Optional[Number] = None,
) -> PricedTotals:
    """Price an order from ``(unit_price, quantity)`` lines.

    Tax is ``TAX_RATE`` of the post-discount amount.
    """
    subtotal = sum(to_cents(price) * int(qty) for price, qty in lines)
    discount = discount_cents(subtotal, discount_type, discount_value)
    taxable = subtotal - discount
    tax = int(
        (Decimal(taxable) * settings.TAX_RATE).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return PricedTotals(subtotal=subtotal, discount=discount, tax=tax, total=taxable + tax)
