"""Value types shared by the catalog, the cart and the commerce client."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from storefront.money import parse_amount


@dataclass(frozen=True)
class SelectedOption:
    """One chosen variant option, e.g. Size = M."""
    name: str
    value: str

    def to_dict(self) -> dict:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "SelectedOption":
        return cls(name=str(data["name"]), value=str(data["value"]))


@dataclass(frozen=True)
class Price:
    """Unit price as returned by the platform ("25.00", "USD")."""
    amount: Decimal
    currency_code: str = "USD"

    def __post_init__(self):
        # Frozen: normalise through object.__setattr__
        object.__setattr__(self, "amount", parse_amount(self.amount))

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "currencyCode": self.currency_code}

    @classmethod
    def from_dict(cls, data: dict) -> "Price":
        return cls(
            amount=data["amount"],
            currency_code=data.get("currencyCode") or data.get("currency_code") or "USD",
        )


@dataclass(frozen=True)
class ProductVariant:
    """A purchasable configuration of a product, as passed to ``add_item``."""
    variant_id: str
    product_id: str
    title: str
    price: Price
    image_url: Optional[str] = None
    selected_options: List[SelectedOption] = field(default_factory=list)
    available_for_sale: bool = True
