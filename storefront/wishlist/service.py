"""Wishlist store.

Membership is local-first. When an identity is attached, the full key set is
pushed to the remote wishlist service through the same coalescing reconciler
the cart uses, so a burst of toggles produces at most one extra call.
"""
from typing import Callable, Dict, Iterable, List, Optional

from storefront.errors import AuthError, ErrorKind, StorefrontError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.observable import Observable
from storefront.sync import Reconciler, SyncState
from storefront.wishlist.models import WishlistEntry

logger = get_logger(__name__)


class WishlistStore(Observable):
    """Owns the set of saved items."""

    def __init__(
        self,
        client,
        entries: Optional[Iterable[WishlistEntry]] = None,
        on_auth_error: Optional[Callable[[AuthError], None]] = None,
    ):
        super().__init__()
        self.client = client
        self._entries: Dict[str, WishlistEntry] = {}
        for entry in entries or []:
            self._entries.setdefault(entry.key, entry)
        self._identity = None
        # Bumped by detach(); an attach that started earlier is abandoned
        self._attach_generation = 0
        self._on_auth_error = on_auth_error
        self.last_error: Optional[ErrorKind] = None
        self._reconciler = Reconciler("wishlist", self._reconcile, lambda: self._notify(self))

    @property
    def entries(self) -> List[WishlistEntry]:
        return list(self._entries.values())

    @property
    def keys(self) -> List[str]:
        return list(self._entries)

    @property
    def state(self) -> SyncState:
        return self._reconciler.state

    @property
    def identity(self):
        return self._identity

    def contains(self, key: str) -> bool:
        return key in self._entries

    def count(self) -> int:
        return len(self._entries)

    def toggle(self, item: WishlistEntry) -> bool:
        """
        Add the item if absent, remove it if present.

        Returns:
            Membership after the toggle
        """
        if item.key in self._entries:
            del self._entries[item.key]
            added = False
        else:
            self._entries[item.key] = item
            added = True
        logger.debug(f"Wishlist {'add' if added else 'remove'} {sanitize_id_for_logging(item.key)}")
        self._commit_local()
        return added

    def clear(self) -> None:
        """Drop every entry locally."""
        self._entries.clear()
        self.last_error = None
        self._reconciler.reset()
        self._notify(self)

    async def attach(self, identity) -> bool:
        """
        Associate the wishlist with a signed-in identity.

        Remote keys are unioned into the local set, then the union is pushed
        back. If the remote set cannot be read the wishlist stays local-only,
        so a replace call never overwrites keys it has not seen.

        Returns:
            True if the identity was attached
        """
        generation = self._attach_generation
        try:
            remote_keys = await self.client.fetch_wishlist_keys(identity)
        except StorefrontError as e:
            if generation != self._attach_generation:
                return False
            logger.warning(f"Could not load remote wishlist ({e.kind.value}): {e.message}")
            self.last_error = e.kind
            self._notify(self)
            if isinstance(e, AuthError) and self._on_auth_error is not None:
                self._on_auth_error(e)
            return False

        if generation != self._attach_generation:
            logger.info("Signed out while loading the remote wishlist, not attaching")
            return False

        self._identity = identity
        for key in remote_keys:
            self._entries.setdefault(key, WishlistEntry(key=key))
        self.last_error = None
        logger.info(f"Wishlist attached with {len(remote_keys)} remote / {self.count()} total keys")
        self._commit_local()
        return True

    def detach(self, clear: bool = False) -> None:
        """Stop syncing; optionally drop local entries."""
        self._attach_generation += 1
        self._identity = None
        if clear:
            self.clear()
        else:
            self._reconciler.reset()
            self._notify(self)

    async def flush(self) -> None:
        await self._reconciler.flush()

    def _commit_local(self) -> None:
        if self._identity is not None:
            self._reconciler.mark_dirty()
        self._notify(self)

    async def _reconcile(self) -> bool:
        identity = self._identity
        if identity is None:
            return True
        try:
            await self.client.replace_wishlist_keys(identity, self.keys)
        except StorefrontError as e:
            logger.warning(f"Wishlist sync failed ({e.kind.value}): {e.message}")
            self.last_error = e.kind
            if isinstance(e, AuthError) and self._on_auth_error is not None:
                self._on_auth_error(e)
            return False
        self.last_error = None
        return True
