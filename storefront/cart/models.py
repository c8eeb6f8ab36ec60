"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from storefront.errors import ErrorKind
from storefront.models import Price, ProductVariant, SelectedOption
from storefront.money import multiply


@dataclass
class LineItem:
    """Single variant + quantity in the cart."""
    variant_id: str
    product_id: str
    title: str
    price: Price
    quantity: int
    image_url: Optional[str] = None
    selected_options: List[SelectedOption] = field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        """Unit price times quantity, unrounded."""
        return multiply(self.price.amount, self.quantity)

    @property
    def options_label(self) -> str:
        """Option values joined for display, e.g. "Black / M"."""
        return " / ".join(opt.value for opt in self.selected_options)

    @classmethod
    def from_variant(
        cls,
        variant: ProductVariant,
        quantity: int,
        selected_options: Optional[List[SelectedOption]] = None,
    ) -> "LineItem":
        return cls(
            variant_id=variant.variant_id,
            product_id=variant.product_id,
            title=variant.title,
            price=variant.price,
            quantity=quantity,
            image_url=variant.image_url,
            selected_options=list(selected_options if selected_options is not None else variant.selected_options),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "variantId": self.variant_id,
            "productId": self.product_id,
            "title": self.title,
            "imageUrl": self.image_url,
            "price": self.price.to_dict(),
            "selectedOptions": [opt.to_dict() for opt in self.selected_options],
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        """Create from dictionary."""
        quantity = int(data["quantity"])
        if quantity < 1:
            raise ValueError(f"Line quantity must be positive, got {quantity}")
        return cls(
            variant_id=str(data["variantId"]),
            product_id=str(data["productId"]),
            title=str(data.get("title", "")),
            price=Price.from_dict(data["price"]),
            quantity=quantity,
            image_url=data.get("imageUrl"),
            selected_options=[SelectedOption.from_dict(opt) for opt in data.get("selectedOptions") or []],
        )


@dataclass
class CartSession:
    """
    Local cart state.

    ``checkout_url`` belongs to the remote cart identified by
    ``remote_cart_id``; the store only hands it out while ``items`` still
    match what was last synced. ``merged_cart_ids`` lists account carts that
    were already merged into this one at sign-in.
    """
    items: List[LineItem] = field(default_factory=list)
    remote_cart_id: Optional[str] = None
    checkout_url: Optional[str] = None
    is_loading: bool = False
    last_error: Optional[ErrorKind] = None
    merged_cart_ids: List[str] = field(default_factory=list)

    def find(self, variant_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.variant_id == variant_id), None)

    def to_dict(self) -> dict:
        """Convert to dictionary for the local snapshot.

        Loading flags, errors and the checkout URL are transient and are not
        persisted; a hydrated cart fetches a fresh URL on its first sync.
        """
        return {
            "items": [item.to_dict() for item in self.items],
            "remoteCartId": self.remote_cart_id,
            "mergedCartIds": list(self.merged_cart_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartSession":
        """Create from dictionary; duplicate variant ids are folded together."""
        items: List[LineItem] = []
        for raw in data.get("items") or []:
            item = LineItem.from_dict(raw)
            existing = next((i for i in items if i.variant_id == item.variant_id), None)
            if existing:
                existing.quantity += item.quantity
            else:
                items.append(item)
        return cls(
            items=items,
            remote_cart_id=data.get("remoteCartId"),
            merged_cart_ids=[str(i) for i in data.get("mergedCartIds") or []],
        )
