"""Checkout pricing and the contact form gating the payment hand-off."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from storefront.money import ZERO, Number, round_money, subtract, to_decimal

DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("100.00")
DEFAULT_FLAT_SHIPPING_RATE = Decimal("9.99")


@dataclass(frozen=True)
class OrderQuote:
    """Order summary shown next to the payment button."""
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    amount_to_free_shipping: Decimal

    @property
    def free_shipping(self) -> bool:
        return self.shipping == ZERO


def quote_order(
    subtotal: Number,
    free_shipping_threshold: Number = DEFAULT_FREE_SHIPPING_THRESHOLD,
    flat_shipping_rate: Number = DEFAULT_FLAT_SHIPPING_RATE,
) -> OrderQuote:
    """
    Price shipping for a cart subtotal.

    Shipping is free strictly above the threshold and a flat rate otherwise.

    Args:
        subtotal: Cart subtotal
        free_shipping_threshold: Subtotal above which shipping is free
        flat_shipping_rate: Shipping charged at or below the threshold

    Returns:
        OrderQuote with rounded amounts
    """
    subtotal = round_money(subtotal)
    threshold = to_decimal(free_shipping_threshold)
    shipping = ZERO if subtotal > threshold else round_money(flat_shipping_rate)
    remaining = ZERO if shipping == ZERO else round_money(subtract(threshold, subtotal))
    return OrderQuote(
        subtotal=subtotal,
        shipping=shipping,
        total=round_money(subtotal + shipping),
        amount_to_free_shipping=max(remaining, ZERO),
    )


class CheckoutForm(BaseModel):
    """Contact and shipping details collected before the hand-off."""
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "United States"

    @property
    def missing_fields(self) -> list[str]:
        missing = [name for name in ("email", "first_name", "last_name") if not getattr(self, name)]
        if self.email and "@" not in self.email:
            missing.append("email")
        return missing

    @property
    def is_ready(self) -> bool:
        """Required fields present; the payment action is enabled."""
        return not self.missing_fields
