"""Cart package: models and the cart store."""
from .models import CartSession, LineItem
from .service import CartStore

__all__ = [
    "CartSession",
    "LineItem",
    "CartStore",
]
