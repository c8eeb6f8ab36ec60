"""
Models for commerce backend requests and responses.

Request inputs and order history are pydantic models; cart and catalog
results are dataclasses because they carry the engine's own value types.
GraphQL connection shapes (``edges``/``node``) are flattened here so the rest
of the engine never sees them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from storefront.models import Price, ProductVariant, SelectedOption


def _nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not connection:
        return []
    return [edge["node"] for edge in connection.get("edges") or [] if edge.get("node")]


def _image_url(image: Optional[Dict[str, Any]]) -> Optional[str]:
    return (image or {}).get("url")


class CartLineInput(BaseModel):
    """Desired quantity of one variant in the remote cart."""
    variant_id: str
    quantity: int = Field(..., ge=1)


def _variant_from_merchandise(merchandise: Dict[str, Any]) -> Optional[ProductVariant]:
    product = merchandise.get("product") or {}
    price = merchandise.get("price")
    if not product.get("id") or not price:
        return None
    return ProductVariant(
        variant_id=merchandise["id"],
        product_id=product["id"],
        title=product.get("title") or merchandise.get("title", ""),
        price=Price.from_dict(price),
        image_url=_image_url(merchandise.get("image")),
        selected_options=[SelectedOption.from_dict(opt) for opt in merchandise.get("selectedOptions") or []],
    )


@dataclass
class RemoteCartLine:
    """A line as the platform stores it.

    ``variant`` is filled when the response carried merchandise details.
    """
    line_id: str
    variant_id: str
    quantity: int
    variant: Optional[ProductVariant] = None


@dataclass
class RemoteCart:
    """Authoritative cart state returned by every cart query/mutation."""
    id: str
    checkout_url: Optional[str] = None
    total_quantity: int = 0
    lines: List[RemoteCartLine] = field(default_factory=list)

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "RemoteCart":
        lines = []
        for line in _nodes(node.get("lines")):
            merchandise = line.get("merchandise") or {}
            if not merchandise.get("id"):
                continue
            lines.append(
                RemoteCartLine(
                    line_id=line["id"],
                    variant_id=merchandise["id"],
                    quantity=int(line.get("quantity") or 0),
                    variant=_variant_from_merchandise(merchandise),
                )
            )
        return cls(
            id=node["id"],
            checkout_url=node.get("checkoutUrl"),
            total_quantity=int(node.get("totalQuantity") or 0),
            lines=lines,
        )

    def quantities(self) -> Dict[str, int]:
        """Quantity per variant id (duplicate lines summed)."""
        result: Dict[str, int] = {}
        for line in self.lines:
            result[line.variant_id] = result.get(line.variant_id, 0) + line.quantity
        return result


class OrderLineItem(BaseModel):
    title: str
    quantity: int
    image_url: Optional[str] = None


class CustomerOrder(BaseModel):
    """Order from the signed-in customer's history."""
    id: str
    order_number: int
    processed_at: datetime
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_amount: Decimal
    currency_code: str
    line_items: List[OrderLineItem] = []
    status_url: Optional[str] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "CustomerOrder":
        total = node.get("totalPrice") or {}
        return cls(
            id=node["id"],
            order_number=node["orderNumber"],
            processed_at=node["processedAt"],
            financial_status=node.get("financialStatus"),
            fulfillment_status=node.get("fulfillmentStatus"),
            total_amount=Decimal(str(total.get("amount", "0"))),
            currency_code=total.get("currencyCode", "USD"),
            line_items=[
                OrderLineItem(
                    title=item.get("title", ""),
                    quantity=int(item.get("quantity") or 0),
                    image_url=_image_url(((item.get("variant") or {}).get("image"))),
                )
                for item in _nodes(node.get("lineItems"))
            ],
            status_url=node.get("statusUrl"),
        )


@dataclass
class Product:
    """Catalog product with its purchasable variants."""
    id: str
    title: str
    handle: str
    description: str = ""
    image_url: Optional[str] = None
    variants: List[ProductVariant] = field(default_factory=list)

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "Product":
        product_image = _image_url(node.get("featuredImage"))
        variants = []
        for variant in _nodes(node.get("variants")):
            price = variant.get("price") or {}
            variants.append(
                ProductVariant(
                    variant_id=variant["id"],
                    product_id=node["id"],
                    title=node.get("title", ""),
                    price=Price.from_dict(price) if price else Price(amount="0"),
                    image_url=_image_url(variant.get("image")) or product_image,
                    selected_options=[
                        SelectedOption.from_dict(opt) for opt in variant.get("selectedOptions") or []
                    ],
                    available_for_sale=bool(variant.get("availableForSale", True)),
                )
            )
        return cls(
            id=node["id"],
            title=node.get("title", ""),
            handle=node.get("handle", ""),
            description=node.get("description") or "",
            image_url=product_image,
            variants=variants,
        )
