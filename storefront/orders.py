"""Order history for the signed-in customer."""
from typing import List, Optional

from storefront.auth import Identity
from storefront.commerce.models import CustomerOrder
from storefront.errors import ERROR_CUSTOMER_TOKEN, AuthError
from storefront.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)


class OrderHistory:
    """Reads past orders through the commerce client."""

    def __init__(self, client):
        self.client = client

    async def list_orders(self, identity: Optional[Identity], first: int = 20) -> List[CustomerOrder]:
        """
        List the customer's orders, newest first.

        Args:
            identity: Signed-in identity carrying a customer access token
            first: Page size

        Returns:
            List of CustomerOrder

        Raises:
            AuthError: No identity, no access token, or the token was rejected
            NetworkError: Backend unreachable after retries
        """
        if identity is None or not identity.access_token:
            raise AuthError(ERROR_CUSTOMER_TOKEN, code="MISSING_CUSTOMER_TOKEN")
        orders = await self.client.fetch_customer_orders(identity.access_token, first=first)
        logger.info(f"Loaded {len(orders)} orders for {sanitize_id_for_logging(identity.id)}")
        return orders
