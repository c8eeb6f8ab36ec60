"""Commerce package: storefront API client and response models."""
from .client import CommerceClient
from .models import CartLineInput, CustomerOrder, Product, RemoteCart, RemoteCartLine

__all__ = [
    "CommerceClient",
    "CartLineInput",
    "CustomerOrder",
    "Product",
    "RemoteCart",
    "RemoteCartLine",
]
