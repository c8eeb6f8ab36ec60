"""Pytest configuration and fixtures"""
import os
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment variables
os.environ.setdefault("SHOPIFY_STORE_DOMAIN", "test-shop.myshopify.com")
os.environ.setdefault("SHOPIFY_STOREFRONT_TOKEN", "test_token")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from storefront.commerce.models import RemoteCart, RemoteCartLine  # noqa: E402
from storefront.config import Settings  # noqa: E402
from storefront.models import Price, ProductVariant, SelectedOption  # noqa: E402
from storefront.persistence import MemoryStorage  # noqa: E402

CART_ID = "gid://shopify/Cart/c1-test"


def _make_variant(
    variant_id: str = "v1",
    amount: str = "25.00",
    product_id: Optional[str] = None,
    title: str = "Anime Tee",
    options: Optional[List[SelectedOption]] = None,
) -> ProductVariant:
    """Build a variant the way the catalog would return it."""
    return ProductVariant(
        variant_id=variant_id,
        product_id=product_id or f"p-{variant_id}",
        title=title,
        price=Price(amount=Decimal(amount), currency_code="USD"),
        image_url=f"https://cdn.test/{variant_id}.jpg",
        selected_options=options or [SelectedOption("Size", "M")],
    )


def _remote_cart_for(lines, cart_id: str = CART_ID, checkout_url: Optional[str] = None) -> RemoteCart:
    """RemoteCart echoing the requested lines."""
    return RemoteCart(
        id=cart_id,
        checkout_url=checkout_url or "https://test-shop.myshopify.com/cart/c/c1-test",
        total_quantity=sum(line.quantity for line in lines),
        lines=[
            RemoteCartLine(line_id=f"line-{line.variant_id}", variant_id=line.variant_id, quantity=line.quantity)
            for line in lines
        ],
    )


@pytest.fixture
def settings():
    """Engine settings pointing at a fake shop"""
    return Settings(
        store_domain="test-shop.myshopify.com",
        storefront_token="test_token",
        wishlist_service_url="https://wishlist.test",
    )


@pytest.fixture
def variant():
    """Sample variant priced 25.00"""
    return _make_variant()


@pytest.fixture
def make_variant():
    """Factory for catalog variants"""
    return _make_variant


@pytest.fixture
def remote_cart_for():
    """Factory for remote carts echoing a line list"""
    return _remote_cart_for


@pytest.fixture
def memory_storage():
    """Empty in-memory snapshot storage"""
    return MemoryStorage()


@pytest.fixture
def mock_commerce_client():
    """Commerce client whose cart calls echo the desired lines"""
    client = Mock()

    async def reconcile(cart_id, lines):
        return _remote_cart_for(lines, cart_id=cart_id or CART_ID)

    client.reconcile_cart = AsyncMock(side_effect=reconcile)
    client.fetch_cart = AsyncMock(return_value=None)
    client.update_buyer_identity = AsyncMock()
    client.fetch_wishlist_keys = AsyncMock(return_value=[])
    client.replace_wishlist_keys = AsyncMock(side_effect=lambda identity, keys: sorted(keys))
    client.fetch_customer_orders = AsyncMock(return_value=[])
    client.aclose = AsyncMock()
    return client
