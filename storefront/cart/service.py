"""Cart store: optimistic local cart reconciled against the commerce backend."""
from decimal import Decimal
from typing import Callable, List, Optional

from storefront.cart.models import CartSession, LineItem
from storefront.commerce.models import CartLineInput, RemoteCart
from storefront.errors import AuthError, ErrorKind, StorefrontError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.models import ProductVariant, SelectedOption
from storefront.money import total
from storefront.observable import Observable
from storefront.sync import Reconciler, SyncState

logger = get_logger(__name__)


class CartStore(Observable):
    """
    Owns line items, derived totals and the checkout-session handle.

    Mutations are synchronous and apply locally first. Each one bumps the
    local revision and asks the reconciler for a round trip; the round trip
    sends the full item list, so coalesced follow-ups always carry the latest
    intent. Remote failures never roll local items back.

    Subscribers are called with the store after every committed change.
    """

    def __init__(
        self,
        client,
        session: Optional[CartSession] = None,
        on_auth_error: Optional[Callable[[AuthError], None]] = None,
    ):
        super().__init__()
        self.client = client
        self._session = session or CartSession()
        self._on_auth_error = on_auth_error
        # Bumped on every local mutation; a sync result is current only if
        # the revision it was computed from is still the latest one.
        self._revision = 0
        # Bumped by clear(); results from an older generation are dropped.
        self._generation = 0
        self._reconciler = Reconciler("cart", self._reconcile, self._on_sync_state)

    # ==================== READ API ====================

    @property
    def items(self) -> List[LineItem]:
        return list(self._session.items)

    @property
    def session(self) -> CartSession:
        return self._session

    @property
    def state(self) -> SyncState:
        return self._reconciler.state

    @property
    def is_loading(self) -> bool:
        return self._session.is_loading

    @property
    def last_error(self) -> Optional[ErrorKind]:
        return self._session.last_error

    @property
    def remote_cart_id(self) -> Optional[str]:
        return self._session.remote_cart_id

    @property
    def checkout_url(self) -> Optional[str]:
        """Checkout URL if the remote cart matches local items, else None."""
        return self._session.checkout_url

    def total_items(self) -> int:
        """Total number of units in cart."""
        return sum(item.quantity for item in self._session.items)

    def total_price(self) -> Decimal:
        """Exact subtotal of all lines."""
        return total(item.line_total for item in self._session.items)

    @property
    def currency_code(self) -> str:
        first = next(iter(self._session.items), None)
        return first.price.currency_code if first else "USD"

    # ==================== COMMANDS ====================

    def add_item(
        self,
        variant: ProductVariant,
        quantity: int = 1,
        selected_options: Optional[List[SelectedOption]] = None,
    ) -> None:
        """Add ``quantity`` units of ``variant``, merging with an existing line."""
        if quantity <= 0:
            logger.debug(f"Ignoring add of {quantity} units of {sanitize_id_for_logging(variant.variant_id)}")
            return

        existing = self._session.find(variant.variant_id)
        if existing:
            existing.quantity += quantity
        else:
            self._session.items.append(LineItem.from_variant(variant, quantity, selected_options))
        self._commit_local()

    def update_quantity(self, variant_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes it."""
        existing = self._session.find(variant_id)
        if existing is None:
            return
        if quantity <= 0:
            self._session.items.remove(existing)
        elif existing.quantity == quantity:
            return
        else:
            existing.quantity = quantity
        self._commit_local()

    def remove_item(self, variant_id: str) -> None:
        """Remove a line."""
        self.update_quantity(variant_id, 0)

    def clear(self) -> None:
        """Empty the cart and forget the remote cart."""
        self._generation += 1
        self._revision += 1
        self._session.items.clear()
        self._session.remote_cart_id = None
        self._session.checkout_url = None
        self._session.last_error = None
        self._reconciler.reset()
        self._session.is_loading = self._reconciler.in_flight
        logger.info("Cart cleared")
        self._notify(self)

    def merge(self, remote_cart: RemoteCart) -> bool:
        """
        Merge an account's remote cart into the local (guest) cart.

        Lines are unioned on variant id with quantities summed, and the local
        cart adopts the remote cart id. A remote cart that was merged before,
        or that already is the local cart, is ignored so repeated sign-in
        events do not double quantities.
        Remote lines that came back without merchandise details cannot be
        priced and are skipped.

        Args:
            remote_cart: The account's cart as returned by the backend

        Returns:
            True if the remote cart was merged
        """
        if remote_cart.id in self._session.merged_cart_ids:
            logger.info(f"Cart {sanitize_id_for_logging(remote_cart.id)} already merged")
            return False
        if remote_cart.id == self._session.remote_cart_id:
            # The account points at the cart this session already syncs
            logger.info(f"Cart {sanitize_id_for_logging(remote_cart.id)} is the local cart")
            return False

        variants = {line.variant_id: line.variant for line in remote_cart.lines if line.variant}
        for variant_id, quantity in remote_cart.quantities().items():
            if quantity <= 0:
                continue
            existing = self._session.find(variant_id)
            if existing:
                existing.quantity += quantity
            elif variant_id in variants:
                self._session.items.append(LineItem.from_variant(variants[variant_id], quantity))
            else:
                logger.warning(f"Skipping unpriced remote variant {sanitize_id_for_logging(variant_id)}")

        self._session.merged_cart_ids.append(remote_cart.id)
        self._session.remote_cart_id = remote_cart.id
        logger.info(
            f"Merged cart {sanitize_id_for_logging(remote_cart.id)}, "
            f"{len(self._session.items)} lines / {self.total_items()} units"
        )
        self._commit_local()
        return True

    # ==================== CHECKOUT ====================

    async def get_checkout_url(self) -> Optional[str]:
        """
        Return the checkout URL for the current items.

        Waits for one reconciliation round trip when local items changed
        since the last successful sync. Returns None for an empty cart or
        when the backend call failed.
        """
        if not self._session.items:
            return None
        if self._session.checkout_url:
            return self._session.checkout_url
        if self.state is SyncState.CLEAN:
            self._reconciler.mark_dirty()
        await self._reconciler.flush()
        return self._session.checkout_url

    async def checkout(self) -> Optional[str]:
        """Hand off to the external checkout; the cart is cleared on success."""
        url = await self.get_checkout_url()
        if url:
            logger.info(f"Checkout hand-off for cart {sanitize_id_for_logging(self._session.remote_cart_id)}")
            self.clear()
        return url

    async def flush(self) -> None:
        """Wait for queued reconciliation to settle."""
        await self._reconciler.flush()

    def retry(self) -> None:
        """Schedule another round trip after a failure."""
        self._reconciler.mark_dirty()

    def resume(self) -> None:
        """Schedule a round trip for a hydrated cart whose URL is not known."""
        if self._session.items and not self._session.checkout_url:
            self._reconciler.mark_dirty()

    # ==================== INTERNAL ====================

    def _commit_local(self) -> None:
        self._revision += 1
        self._session.checkout_url = None
        self._reconciler.mark_dirty()
        self._notify(self)

    def _on_sync_state(self) -> None:
        self._session.is_loading = self._reconciler.state is SyncState.DIRTY_IN_FLIGHT
        self._notify(self)

    async def _reconcile(self) -> bool:
        generation = self._generation
        revision = self._revision
        cart_id = self._session.remote_cart_id
        lines = [CartLineInput(variant_id=i.variant_id, quantity=i.quantity) for i in self._session.items]

        if not lines and not cart_id:
            self._session.last_error = None
            return True

        try:
            remote = await self.client.reconcile_cart(cart_id, lines)
        except StorefrontError as e:
            if generation != self._generation:
                return True
            logger.warning(f"Cart reconciliation failed ({e.kind.value}): {e.message}")
            self._session.last_error = e.kind
            if isinstance(e, AuthError) and self._on_auth_error is not None:
                self._on_auth_error(e)
            return False

        if generation != self._generation:
            logger.debug("Dropping reconciliation result for a cleared cart")
            return True

        if self._session.remote_cart_id != cart_id:
            # merge() adopted another cart while this call was in flight
            logger.debug(f"Keeping cart {sanitize_id_for_logging(self._session.remote_cart_id)} over stale result")
            return True

        self._session.remote_cart_id = remote.id
        self._session.last_error = None
        if revision == self._revision:
            self._session.checkout_url = remote.checkout_url
        return True
