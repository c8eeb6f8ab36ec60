"""
Shopping session - composition root of the engine.

Builds the commerce client, the persistence layer and both stores, hydrates
the stores from local snapshots, and applies the sign-in / sign-out policy.
Presentation code receives a ``ShoppingSession`` instance explicitly; there
is no module-level singleton.
"""

import asyncio
from typing import Optional, Set

from storefront.auth import AuthBridge, AuthEvent, Identity
from storefront.cart import CartStore
from storefront.checkout import CheckoutForm, OrderQuote, quote_order
from storefront.commerce import CommerceClient
from storefront.config import Settings
from storefront.errors import AuthError, StorefrontError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.orders import OrderHistory
from storefront.persistence import SnapshotStore, StorageBackend, storage_from_settings
from storefront.wishlist import WishlistStore

logger = get_logger(__name__)


class ShoppingSession:
    """
    One shopper's cart, wishlist and identity wiring.

    Use ``await ShoppingSession.create(settings)`` inside the event loop;
    the constructor only wires and hydrates, it never touches the network.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[CommerceClient] = None,
        storage: Optional[StorageBackend] = None,
        auth: Optional[AuthBridge] = None,
    ):
        self.settings = settings
        self.client = client or CommerceClient(settings)
        self.snapshots = SnapshotStore(
            storage if storage is not None else storage_from_settings(settings),
            settings.storage_prefix,
        )
        self.auth = auth or AuthBridge()
        self._tasks: Set[asyncio.Task] = set()

        # Hydrate before any remote call can be issued
        self.cart = CartStore(
            self.client,
            session=self.snapshots.load_cart(),
            on_auth_error=self._on_auth_error,
        )
        self.wishlist = WishlistStore(
            self.client,
            entries=self.snapshots.load_wishlist(),
            on_auth_error=self._on_auth_error,
        )
        self.orders = OrderHistory(self.client)

        self.snapshots.watch(self.cart, self.wishlist)
        self.auth.subscribe(self._on_auth_event)
        logger.info(
            f"Session hydrated: {len(self.cart.items)} cart lines, "
            f"{self.wishlist.count()} wishlist entries"
        )

    @classmethod
    async def create(
        cls,
        settings: Settings,
        client: Optional[CommerceClient] = None,
        storage: Optional[StorageBackend] = None,
        auth: Optional[AuthBridge] = None,
    ) -> "ShoppingSession":
        """Build, hydrate and start background sync."""
        session = cls(settings, client=client, storage=storage, auth=auth)
        session.start()
        return session

    def start(self) -> None:
        """Resume reconciliation for hydrated state and attach a present identity."""
        self.cart.resume()
        if self.auth.identity is not None:
            self._spawn(self._handle_sign_in(self.auth.identity))

    # ==================== PRESENTATION API ====================

    def quote(self) -> OrderQuote:
        """Shipping and totals for the current cart."""
        return quote_order(
            self.cart.total_price(),
            free_shipping_threshold=self.settings.free_shipping_threshold,
            flat_shipping_rate=self.settings.flat_shipping_rate,
        )

    def can_checkout(self, form: CheckoutForm) -> bool:
        """Whether the payment action should be enabled."""
        return bool(self.cart.items) and form.is_ready and not self.cart.is_loading

    async def checkout(self, form: CheckoutForm) -> Optional[str]:
        """Validate the form and hand off to the external checkout."""
        if not form.is_ready:
            logger.info(f"Checkout blocked, missing {form.missing_fields}")
            return None
        return await self.cart.checkout()

    # ==================== AUTH POLICY ====================

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_auth_error(self, error: AuthError) -> None:
        logger.warning(f"Credential rejected ({error.code}), signing out")
        self.auth.sign_out()

    def _on_auth_event(self, event: AuthEvent, identity: Identity) -> None:
        if event is AuthEvent.SIGNED_IN:
            self._spawn(self._handle_sign_in(identity))
        elif event is AuthEvent.SIGNED_OUT:
            self._handle_sign_out()

    async def _handle_sign_in(self, identity: Identity) -> None:
        if identity.cart_id:
            try:
                remote = await self.client.fetch_cart(identity.cart_id)
            except StorefrontError as e:
                logger.warning(
                    f"Account cart {sanitize_id_for_logging(identity.cart_id)} not loaded "
                    f"({e.kind.value}): {e.message}"
                )
                if isinstance(e, AuthError):
                    self._on_auth_error(e)
                    return
                remote = None
            if self.auth.identity != identity:
                logger.info("Identity changed while loading the account cart, skipping merge")
                return
            if remote is not None:
                self.cart.merge(remote)

        if identity.access_token and self.cart.items:
            await self.cart.flush()
            if self.cart.remote_cart_id and self.auth.identity == identity:
                try:
                    await self.client.update_buyer_identity(
                        self.cart.remote_cart_id, identity.access_token, identity.email
                    )
                except StorefrontError as e:
                    logger.warning(f"Buyer identity not attached ({e.kind.value}): {e.message}")
                    if isinstance(e, AuthError):
                        self._on_auth_error(e)
                        return

        if self.auth.identity == identity:
            await self.wishlist.attach(identity)

    def _handle_sign_out(self) -> None:
        self.wishlist.detach(clear=self.settings.wishlist_clear_on_sign_out)
        if self.settings.cart_clear_on_sign_out:
            self.cart.clear()

    # ==================== LIFECYCLE ====================

    async def settle(self) -> None:
        """Wait for auth handlers and queued reconciliation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        await self.cart.flush()
        await self.wishlist.flush()

    async def aclose(self) -> None:
        await self.settle()
        await self.client.aclose()
