"""
Tests for storefront/pricing.py -- authoritative order pricing -- and its
agreement with the client-side total calculator.
"""

import os
import sys
from decimal import Decimal

import pytest

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.pricing import discount_cents, from_cents, price_order, to_cents
from storefront_client.cart import CartItem
from storefront_client.totals import compute_order_totals
from storefront_client.types import DiscountDecision


class TestCents:
    def test_to_cents_rounds_half_up(self):
        assert to_cents("29.99") == 2999
        assert to_cents(Decimal("0.005")) == 1
        assert to_cents(10) == 1000

    def test_from_cents(self):
        assert from_cents(9720) == Decimal("97.20")


class TestDiscountCents:
    def test_percentage(self):
        assert discount_cents(10000, "percentage", 20) == 2000

    def test_percentage_rounds_half_up(self):
        assert discount_cents(5998, "percentage", 20) == 1200

    def test_fixed_clamped(self):
        assert discount_cents(5000, "fixed", 75) == 5000

    def test_no_discount(self):
        assert discount_cents(5000, None, None) == 0


class TestPriceOrder:
    def test_tax_on_discounted_total(self):
        totals = price_order([("100.00", 1)], "fixed", 10)
        assert totals.subtotal == 10000
        assert totals.discount == 1000
        assert totals.taxable == 9000
        assert totals.tax == 720
        assert totals.total == 9720

    def test_as_amounts(self):
        amounts = price_order([("29.99", 2)]).as_amounts()
        assert amounts == {
            "subtotal": Decimal("59.98"),
            "discount_amount": Decimal("0.00"),
            "tax": Decimal("4.80"),
            "total": Decimal("64.78"),
        }


CASES = [
    ([("29.99", 2)], None, None),
    ([("29.99", 2)], "percentage", "20"),
    ([("45.00", 1), ("12.50", 3)], "percentage", "15"),
    ([("19.95", 1)], "fixed", "25"),
    ([("64.00", 1), ("38.00", 2)], "fixed", "10"),
    ([("0.99", 7)], "percentage", "33"),
]


class TestClientServerAgreement:
    @pytest.mark.parametrize("lines,discount_type,discount_value", CASES)
    def test_same_totals(self, lines, discount_type, discount_value):
        server = price_order(lines, discount_type, discount_value)

        items = [
            CartItem(id=str(i), name=f"Item {i}", price=Decimal(price), quantity=qty)
            for i, (price, qty) in enumerate(lines)
        ]
        decision = None
        if discount_type:
            decision = DiscountDecision(
                valid=True, discount_type=discount_type, discount_value=Decimal(discount_value),
            )
        client = compute_order_totals(items, decision)

        assert to_cents(client.subtotal) == server.subtotal
        assert to_cents(client.discount_amount) == server.discount
        assert to_cents(client.tax) == server.tax
        assert to_cents(client.grand_total) == server.total
