"""Wishlist package: models and the wishlist store."""
from .models import WishlistEntry
from .service import WishlistStore

__all__ = [
    "WishlistEntry",
    "WishlistStore",
]
