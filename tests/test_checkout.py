"""
Tests for checkout pricing and the checkout form
"""

from decimal import Decimal

import pytest

from storefront.checkout import CheckoutForm, quote_order


class TestQuoteOrder:
    """Shipping is free strictly above the threshold."""

    def test_free_shipping_above_threshold(self):
        quote = quote_order(Decimal("120.00"))

        assert quote.shipping == Decimal("0.00")
        assert quote.total == Decimal("120.00")
        assert quote.free_shipping is True
        assert quote.amount_to_free_shipping == Decimal("0.00")

    def test_flat_rate_below_threshold(self):
        quote = quote_order(Decimal("50.00"))

        assert quote.shipping == Decimal("9.99")
        assert quote.total == Decimal("59.99")
        assert quote.free_shipping is False
        assert quote.amount_to_free_shipping == Decimal("50.00")

    def test_exact_threshold_still_pays_shipping(self):
        quote = quote_order("100.00")
        assert quote.shipping == Decimal("9.99")
        assert quote.total == Decimal("109.99")

    def test_custom_rates(self):
        quote = quote_order(Decimal("30.00"), free_shipping_threshold="25", flat_shipping_rate="4.50")
        assert quote.shipping == Decimal("0.00")

        quote = quote_order(Decimal("20.00"), free_shipping_threshold="25", flat_shipping_rate="4.50")
        assert quote.total == Decimal("24.50")

    def test_subtotal_is_rounded(self):
        quote = quote_order(Decimal("0.105"))
        assert quote.subtotal == Decimal("0.11")


class TestCheckoutForm:
    """Tests for form readiness."""

    def test_required_fields(self):
        form = CheckoutForm()
        assert form.missing_fields == ["email", "first_name", "last_name"]
        assert form.is_ready is False

    def test_ready_form(self):
        form = CheckoutForm(email="a@b.co", first_name="Ada", last_name="Lovelace", city="London")
        assert form.is_ready is True
        assert form.country == "United States"

    def test_whitespace_only_is_missing(self):
        form = CheckoutForm(email="a@b.co", first_name="   ", last_name="L")
        assert form.missing_fields == ["first_name"]

    @pytest.mark.parametrize("email", ["plainaddress", "missing.at.sign.com"])
    def test_email_needs_at_sign(self, email):
        form = CheckoutForm(email=email, first_name="A", last_name="B")
        assert form.missing_fields == ["email"]
