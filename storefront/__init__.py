"""
Storefront shopping-session engine.

This package contains:
- cart: cart store with optimistic updates and remote reconciliation
- wishlist: wishlist store
- commerce: storefront GraphQL API client
- persistence: local cart/wishlist snapshots
- auth: identity bridge
- session: composition root

Note: Imports are lazy so that importing a leaf module (money, errors)
does not pull in the HTTP stack.
"""

__version__ = "0.1.0"

__all__ = [
    "ShoppingSession",
    "Settings",
    "load_settings",
    "Identity",
    "AuthBridge",
]


def __getattr__(name):
    """Lazy attribute access for the public entry points."""
    if name == "ShoppingSession":
        from storefront.session import ShoppingSession
        return ShoppingSession
    if name in ("Settings", "load_settings"):
        from storefront import config
        return getattr(config, name)
    if name in ("Identity", "AuthBridge"):
        from storefront import auth
        return getattr(auth, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
