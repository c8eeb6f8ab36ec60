"""
Tests for the shopping session: hydration, sign-in policy and checkout
"""

import asyncio
import json
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from storefront.auth import AuthBridge, Identity
from storefront.cart import CartSession, LineItem
from storefront.checkout import CheckoutForm
from storefront.commerce.models import RemoteCart, RemoteCartLine
from storefront.errors import AuthError, NetworkError
from storefront.persistence import SnapshotStore
from storefront.session import ShoppingSession
from storefront.wishlist import WishlistEntry

ACCOUNT_CART_ID = "gid://shopify/Cart/account"

READY_FORM = CheckoutForm(email="shopper@example.com", first_name="Ada", last_name="Lovelace")


@pytest.fixture
def identity():
    return Identity(
        id="gid://shopify/Customer/7",
        email="shopper@example.com",
        access_token="cust-token",
        cart_id=ACCOUNT_CART_ID,
    )


@pytest.fixture
def account_cart(make_variant):
    return RemoteCart(
        id=ACCOUNT_CART_ID,
        checkout_url="https://test-shop.myshopify.com/cart/c/account",
        lines=[
            RemoteCartLine("L1", "v1", 2, make_variant("v1")),
            RemoteCartLine("L2", "v9", 1, make_variant("v9", amount="9.00")),
        ],
    )


@pytest.fixture
def make_session(settings, mock_commerce_client, memory_storage):
    def factory(auth=None, **overrides):
        return ShoppingSession(
            replace(settings, **overrides),
            client=mock_commerce_client,
            storage=memory_storage,
            auth=auth,
        )

    return factory


class TestHydration:
    """Tests for restoring state from snapshots."""

    def test_hydrates_cart_and_wishlist(self, make_session, memory_storage, variant):
        snapshots = SnapshotStore(memory_storage)
        snapshots.save_cart(CartSession(items=[LineItem.from_variant(variant, 2)]))
        snapshots.save_wishlist([WishlistEntry(key="p-1")])

        session = make_session()

        assert session.cart.total_items() == 2
        assert session.wishlist.contains("p-1")

    def test_corrupt_snapshot_starts_empty(self, make_session, memory_storage):
        memory_storage.data["storefront:cart"] = "{oops"

        session = make_session()

        assert session.cart.items == []

    def test_changes_are_persisted(self, make_session, memory_storage, variant):
        session = make_session()
        session.cart.add_item(variant, 1)
        session.wishlist.toggle(WishlistEntry(key="p-2"))

        restored = make_session()

        assert restored.cart.total_items() == 1
        assert restored.wishlist.contains("p-2")

    @pytest.mark.asyncio
    async def test_start_reconciles_hydrated_cart(self, settings, mock_commerce_client, memory_storage, variant):
        SnapshotStore(memory_storage).save_cart(CartSession(items=[LineItem.from_variant(variant, 1)]))

        session = await ShoppingSession.create(settings, client=mock_commerce_client, storage=memory_storage)
        await session.settle()

        mock_commerce_client.reconcile_cart.assert_awaited_once()
        assert session.cart.checkout_url is not None

    @pytest.mark.asyncio
    async def test_saved_checkout_url_is_not_trusted(
        self, settings, mock_commerce_client, memory_storage, variant
    ):
        """A URL written by an older snapshot may belong to a completed checkout."""
        memory_storage.data["storefront:cart"] = json.dumps(
            {
                "version": 1,
                "cart": {
                    "items": [LineItem.from_variant(variant, 1).to_dict()],
                    "remoteCartId": "gid://shopify/Cart/c1-test",
                    "checkoutUrl": "https://test-shop.myshopify.com/cart/c/completed",
                },
            }
        )

        session = await ShoppingSession.create(settings, client=mock_commerce_client, storage=memory_storage)
        url = await session.cart.get_checkout_url()

        assert url == "https://test-shop.myshopify.com/cart/c/c1-test"
        mock_commerce_client.reconcile_cart.assert_awaited_once()
        assert "checkoutUrl" not in json.loads(memory_storage.data["storefront:cart"])["cart"]


class TestSignIn:
    """Tests for the sign-in / sign-out policy."""

    @pytest.mark.asyncio
    async def test_sign_in_merges_account_cart(
        self, make_session, mock_commerce_client, identity, account_cart, variant
    ):
        mock_commerce_client.fetch_cart = AsyncMock(return_value=account_cart)
        session = make_session()
        session.cart.add_item(variant, 1)

        session.auth.sign_in(identity)
        await session.settle()

        assert {i.variant_id: i.quantity for i in session.cart.items} == {"v1": 3, "v9": 1}
        assert session.cart.remote_cart_id == ACCOUNT_CART_ID
        mock_commerce_client.fetch_cart.assert_awaited_once_with(ACCOUNT_CART_ID)
        mock_commerce_client.update_buyer_identity.assert_awaited_once_with(
            ACCOUNT_CART_ID, "cust-token", "shopper@example.com"
        )

    @pytest.mark.asyncio
    async def test_repeated_sign_in_does_not_double_quantities(
        self, make_session, mock_commerce_client, identity, account_cart, variant
    ):
        mock_commerce_client.fetch_cart = AsyncMock(return_value=account_cart)
        session = make_session()
        session.cart.add_item(variant, 1)

        session.auth.sign_in(identity)
        await session.settle()
        session.auth.sign_out()
        session.auth.sign_in(identity)
        await session.settle()

        assert session.cart.total_items() == 4
        assert session.cart.total_price() == Decimal("84.00")

    @pytest.mark.asyncio
    async def test_merge_survives_reload(
        self, make_session, mock_commerce_client, identity, account_cart, variant
    ):
        mock_commerce_client.fetch_cart = AsyncMock(return_value=account_cart)
        session = make_session()
        session.cart.add_item(variant, 1)
        session.auth.sign_in(identity)
        await session.settle()

        reloaded = make_session()
        reloaded.auth.sign_in(identity)
        await reloaded.settle()

        assert reloaded.cart.total_items() == 4

    @pytest.mark.asyncio
    async def test_sign_in_attaches_wishlist(self, make_session, mock_commerce_client, identity):
        mock_commerce_client.fetch_wishlist_keys = AsyncMock(return_value=["p-5"])
        session = make_session()
        session.wishlist.toggle(WishlistEntry(key="p-1"))

        session.auth.sign_in(identity)
        await session.settle()

        assert set(session.wishlist.keys) == {"p-1", "p-5"}
        assert session.wishlist.identity == identity
        mock_commerce_client.replace_wishlist_keys.assert_awaited()

    @pytest.mark.asyncio
    async def test_existing_identity_is_attached_on_create(
        self, settings, mock_commerce_client, memory_storage, identity
    ):
        session = await ShoppingSession.create(
            settings,
            client=mock_commerce_client,
            storage=memory_storage,
            auth=AuthBridge(identity),
        )
        await session.settle()

        mock_commerce_client.fetch_cart.assert_awaited_once_with(ACCOUNT_CART_ID)
        assert session.wishlist.identity == identity

    @pytest.mark.asyncio
    async def test_account_cart_unavailable_keeps_guest_cart(
        self, make_session, mock_commerce_client, identity, variant
    ):
        mock_commerce_client.fetch_cart = AsyncMock(side_effect=NetworkError("down"))
        session = make_session()
        session.cart.add_item(variant, 2)

        session.auth.sign_in(identity)
        await session.settle()

        assert session.cart.total_items() == 2
        assert session.auth.is_signed_in

    @pytest.mark.asyncio
    async def test_rejected_token_signs_out(self, make_session, mock_commerce_client, identity):
        mock_commerce_client.fetch_cart = AsyncMock(side_effect=AuthError("expired"))
        session = make_session()

        session.auth.sign_in(identity)
        await session.settle()

        assert session.auth.identity is None
        assert session.wishlist.identity is None

    @pytest.mark.asyncio
    async def test_cart_auth_error_signs_out(self, make_session, mock_commerce_client, identity, variant):
        session = make_session()
        session.auth.sign_in(Identity(id=identity.id, email=identity.email))
        await session.settle()

        mock_commerce_client.reconcile_cart = AsyncMock(side_effect=AuthError("revoked"))
        session.cart.add_item(variant, 1)
        await session.settle()

        assert session.auth.is_signed_in is False

    @pytest.mark.asyncio
    async def test_sign_out_clears_wishlist_keeps_cart(self, make_session, identity, variant):
        session = make_session()
        session.cart.add_item(variant, 1)
        session.wishlist.toggle(WishlistEntry(key="p-1"))
        session.auth.sign_in(identity)
        await session.settle()

        session.auth.sign_out()

        assert session.wishlist.count() == 0
        assert session.wishlist.identity is None
        assert session.cart.total_items() == 1

    @pytest.mark.asyncio
    async def test_sign_out_policy_is_configurable(self, make_session, identity, variant):
        session = make_session(cart_clear_on_sign_out=True, wishlist_clear_on_sign_out=False)
        session.cart.add_item(variant, 1)
        session.wishlist.toggle(WishlistEntry(key="p-1"))
        session.auth.sign_in(identity)
        await session.settle()

        session.auth.sign_out()

        assert session.cart.items == []
        assert session.wishlist.count() == 1


class TestSignInRaces:
    """Sign-in and sign-out interleaved with in-flight remote work."""

    @pytest.mark.asyncio
    async def test_sign_out_while_loading_account_cart_skips_merge(
        self, make_session, mock_commerce_client, identity, account_cart, variant
    ):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch(cart_id):
            started.set()
            await release.wait()
            return account_cart

        mock_commerce_client.fetch_cart = AsyncMock(side_effect=slow_fetch)
        session = make_session()
        session.cart.add_item(variant, 1)

        session.auth.sign_in(identity)
        await started.wait()
        session.auth.sign_out()
        release.set()
        await session.settle()

        assert session.cart.total_items() == 1
        assert session.cart.remote_cart_id == "gid://shopify/Cart/c1-test"
        mock_commerce_client.update_buyer_identity.assert_not_awaited()
        mock_commerce_client.fetch_wishlist_keys.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sign_out_while_loading_wishlist(self, make_session, mock_commerce_client):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch(identity):
            started.set()
            await release.wait()
            return ["secret-remote-key"]

        mock_commerce_client.fetch_wishlist_keys = AsyncMock(side_effect=slow_fetch)
        session = make_session()
        session.wishlist.toggle(WishlistEntry(key="p-1"))

        session.auth.sign_in(Identity(id="gid://shopify/Customer/7", email="shopper@example.com", access_token="tok"))
        await started.wait()
        session.auth.sign_out()
        release.set()
        await session.settle()

        assert not session.wishlist.contains("secret-remote-key")
        assert session.wishlist.identity is None
        mock_commerce_client.replace_wishlist_keys.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sign_in_with_the_synced_cart_does_not_double(
        self, make_session, mock_commerce_client, variant
    ):
        session = make_session()
        session.cart.add_item(variant, 2)
        await session.settle()
        own_cart_id = session.cart.remote_cart_id
        mock_commerce_client.fetch_cart = AsyncMock(
            return_value=RemoteCart(id=own_cart_id, lines=[RemoteCartLine("line-v1", "v1", 2, variant)])
        )

        session.auth.sign_in(
            Identity(id="gid://shopify/Customer/7", email="shopper@example.com", access_token="tok", cart_id=own_cart_id)
        )
        await session.settle()

        assert session.cart.total_items() == 2
        assert session.cart.remote_cart_id == own_cart_id


class TestCheckout:
    """Tests for pricing and the checkout hand-off."""

    def test_quote_free_shipping_above_threshold(self, make_session, variant):
        session = make_session()
        session.cart.add_item(variant, 5)

        quote = session.quote()

        assert quote.subtotal == Decimal("125.00")
        assert quote.shipping == Decimal("0.00")
        assert quote.total == Decimal("125.00")

    def test_quote_flat_rate_below_threshold(self, make_session, variant):
        session = make_session()
        session.cart.add_item(variant, 2)

        quote = session.quote()

        assert quote.shipping == Decimal("9.99")
        assert quote.total == Decimal("59.99")

    def test_can_checkout(self, make_session, variant):
        session = make_session()
        assert session.can_checkout(READY_FORM) is False

        session.cart.add_item(variant, 1)
        assert session.can_checkout(READY_FORM) is True
        assert session.can_checkout(CheckoutForm(email="shopper@example.com")) is False

    @pytest.mark.asyncio
    async def test_checkout_blocked_by_incomplete_form(self, make_session, variant):
        session = make_session()
        session.cart.add_item(variant, 1)

        url = await session.checkout(CheckoutForm(email="not-an-email", first_name="A", last_name="B"))

        assert url is None
        assert session.cart.total_items() == 1

    @pytest.mark.asyncio
    async def test_checkout_hands_off_and_clears(self, make_session, memory_storage, variant):
        session = make_session()
        session.cart.add_item(variant, 1)

        url = await session.checkout(READY_FORM)
        await session.aclose()

        assert url == "https://test-shop.myshopify.com/cart/c/c1-test"
        assert session.cart.items == []
        assert SnapshotStore(memory_storage).load_cart().items == []
