"""Commerce Client - storefront GraphQL API integration.

Translates store intents into the platform's query/mutation protocol.

Every mutating operation reconciles the remote side toward a desired state
(the full line list, the full wishlist key set) instead of applying deltas,
so a retry after a lost response converges on the same result. Retries are
handled with tenacity and apply to ``NetworkError`` only.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.commerce import queries
from storefront.commerce.models import CartLineInput, CustomerOrder, Product, RemoteCart
from storefront.config import Settings
from storefront.errors import (
    ERROR_CUSTOMER_TOKEN,
    ERROR_INVALID_REQUEST,
    ERROR_NETWORK,
    ERROR_THROTTLED,
    ERROR_UNAUTHORIZED,
    AuthError,
    NetworkError,
    StorefrontError,
    ValidationError,
)
from storefront.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging

logger = get_logger(__name__)

_AUTH_CODES = {"ACCESS_DENIED", "UNAUTHORIZED", "UNAUTHENTICATED", "FORBIDDEN"}
_RETRYABLE_CODES = {"THROTTLED", "INTERNAL_SERVER_ERROR", "SERVICE_UNAVAILABLE"}


def classify_status(status_code: int, context: str) -> Optional[StorefrontError]:
    """Map an HTTP status to a classified error, or None when it is a success."""
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return AuthError(f"{ERROR_UNAUTHORIZED}: {context} returned {status_code}", code=str(status_code))
    if status_code == 429:
        return NetworkError(f"{ERROR_THROTTLED}: {context}", code="THROTTLED")
    if status_code >= 500:
        return NetworkError(f"{ERROR_NETWORK}: {context} returned {status_code}", code=str(status_code))
    return ValidationError(f"{ERROR_INVALID_REQUEST}: {context} returned {status_code}", code=str(status_code))


def classify_graphql_errors(errors: List[Dict[str, Any]]) -> StorefrontError:
    """Map top-level GraphQL ``errors`` to a classified error."""
    first = errors[0] if errors else {}
    message = first.get("message") or ERROR_INVALID_REQUEST
    codes = {
        ((err.get("extensions") or {}).get("code") or "").upper()
        for err in errors
    }
    if codes & _AUTH_CODES:
        return AuthError(message, code=next(iter(codes & _AUTH_CODES)))
    if codes & _RETRYABLE_CODES:
        return NetworkError(message, code=next(iter(codes & _RETRYABLE_CODES)))
    return ValidationError(message, code=next(iter(codes), None) or None)


def _json_object(response: httpx.Response, context: str) -> Dict[str, Any]:
    """Decode a JSON object body; anything else is treated as a broken upstream."""
    try:
        payload = response.json()
    except ValueError as e:
        # Proxies answer with HTML pages during outages
        raise NetworkError(f"{ERROR_NETWORK}: {context} returned a non-JSON body") from e
    if not isinstance(payload, dict):
        raise NetworkError(f"{ERROR_NETWORK}: {context} returned {type(payload).__name__} instead of an object")
    return payload


def collapse_lines(lines: Iterable[CartLineInput]) -> Dict[str, int]:
    """Desired quantity per variant, in first-seen order, positive only."""
    desired: Dict[str, int] = {}
    for line in lines:
        desired[line.variant_id] = desired.get(line.variant_id, 0) + line.quantity
    return {variant_id: qty for variant_id, qty in desired.items() if qty > 0}


class CommerceClient:
    """Typed client for the storefront GraphQL API and the wishlist service."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_wait=None,
    ):
        self.graphql_url = settings.graphql_url
        self.wishlist_url = (settings.wishlist_service_url or "").rstrip("/") or None
        self._token = settings.storefront_token
        self._timeout = settings.timeout_seconds
        self._max_attempts = settings.max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.3, min=0.3, max=3)

        # HTTP client (lazy initialization unless injected)
        self._http_client: Optional[httpx.AsyncClient] = http_client
        self._owns_http_client = http_client is None

    # ==================== INTERNAL HELPERS ====================

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazily create the shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=5.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(NetworkError),
        )

    async def _send(self, method: str, url: str, context: str, **kwargs) -> httpx.Response:
        client = await self._get_http_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{ERROR_NETWORK}: {context} timed out", code="TIMEOUT") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{ERROR_NETWORK}: {context}: {type(e).__name__}", code="TRANSPORT") from e

        error = classify_status(response.status_code, context)
        if error is not None:
            logger.warning(f"{context} failed with HTTP {response.status_code}")
            raise error
        return response

    async def _graphql(self, query: str, variables: Dict[str, Any], context: str) -> Dict[str, Any]:
        """Execute one GraphQL request and return its ``data`` object."""
        response = await self._send(
            "POST",
            self.graphql_url,
            context,
            json={"query": query, "variables": variables},
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Storefront-Access-Token": self._token,
            },
        )
        payload = _json_object(response, context)

        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            errors = [err if isinstance(err, dict) else {"message": str(err)} for err in errors]
            error = classify_graphql_errors(errors)
            logger.warning(f"{context} returned GraphQL errors: {sanitize_string_for_logging(error.message)}")
            raise error
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise NetworkError(f"{ERROR_NETWORK}: {context} returned malformed data")
        return data

    async def _cart_mutation(self, query: str, variables: Dict[str, Any], root: str) -> RemoteCart:
        data = await self._graphql(query, variables, root)
        result = data.get(root) or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            first = user_errors[0]
            raise ValidationError(first.get("message") or ERROR_INVALID_REQUEST, code=first.get("code"))
        if not result.get("cart"):
            raise ValidationError(f"{root} returned no cart")
        return RemoteCart.from_node(result["cart"])

    # ==================== CART ====================

    async def _fetch_cart_once(self, cart_id: str) -> Optional[RemoteCart]:
        data = await self._graphql(queries.CART_QUERY, {"id": cart_id}, "cart")
        node = data.get("cart")
        return RemoteCart.from_node(node) if node else None

    async def fetch_cart(self, cart_id: str) -> Optional[RemoteCart]:
        """Fetch a cart by id; None when it no longer exists (expired or completed)."""
        async for attempt in self._retrying():
            with attempt:
                return await self._fetch_cart_once(cart_id)

    async def _reconcile_once(self, cart_id: Optional[str], desired: Dict[str, int]) -> RemoteCart:
        cart = await self._fetch_cart_once(cart_id) if cart_id else None

        if cart is None:
            if cart_id:
                logger.info(f"Cart {sanitize_id_for_logging(cart_id)} is gone, creating a new one")
            lines = [{"merchandiseId": v, "quantity": q} for v, q in desired.items()]
            return await self._cart_mutation(
                queries.CART_CREATE_MUTATION, {"input": {"lines": lines}}, "cartCreate"
            )

        seen: Dict[str, str] = {}
        to_remove: List[str] = []
        to_update: List[Dict[str, Any]] = []
        for line in cart.lines:
            if line.variant_id in seen or line.variant_id not in desired:
                to_remove.append(line.line_id)
                continue
            seen[line.variant_id] = line.line_id
            if line.quantity != desired[line.variant_id]:
                to_update.append({"id": line.line_id, "quantity": desired[line.variant_id]})
        to_add = [
            {"merchandiseId": v, "quantity": q} for v, q in desired.items() if v not in seen
        ]

        if to_remove:
            cart = await self._cart_mutation(
                queries.CART_LINES_REMOVE_MUTATION,
                {"cartId": cart.id, "lineIds": to_remove},
                "cartLinesRemove",
            )
        if to_update:
            cart = await self._cart_mutation(
                queries.CART_LINES_UPDATE_MUTATION,
                {"cartId": cart.id, "lines": to_update},
                "cartLinesUpdate",
            )
        if to_add:
            cart = await self._cart_mutation(
                queries.CART_LINES_ADD_MUTATION,
                {"cartId": cart.id, "lines": to_add},
                "cartLinesAdd",
            )
        return cart

    async def reconcile_cart(
        self,
        cart_id: Optional[str],
        lines: Sequence[CartLineInput],
    ) -> RemoteCart:
        """
        Bring the remote cart to exactly ``lines``.

        Creates a cart when ``cart_id`` is absent or no longer resolves,
        otherwise removes, updates and adds lines until the remote quantities
        match. Each retry recomputes the diff from a fresh read.

        Args:
            cart_id: Remote cart id, if one was created before
            lines: Full desired line list

        Returns:
            The authoritative cart after reconciliation

        Raises:
            NetworkError: After the last retry attempt
            ValidationError: When the platform rejects a line (e.g. stock)
            AuthError: When the storefront token is rejected
        """
        desired = collapse_lines(lines)
        logger.info(
            f"Reconciling cart {sanitize_id_for_logging(cart_id)} "
            f"to {len(desired)} lines / {sum(desired.values())} units"
        )
        async for attempt in self._retrying():
            with attempt:
                return await self._reconcile_once(cart_id, desired)

    async def update_buyer_identity(
        self,
        cart_id: str,
        customer_access_token: str,
        email: Optional[str] = None,
    ) -> RemoteCart:
        """Attach the signed-in customer to a cart."""
        buyer_identity: Dict[str, Any] = {"customerAccessToken": customer_access_token}
        if email:
            buyer_identity["email"] = email
        async for attempt in self._retrying():
            with attempt:
                return await self._cart_mutation(
                    queries.CART_BUYER_IDENTITY_UPDATE_MUTATION,
                    {"cartId": cart_id, "buyerIdentity": buyer_identity},
                    "cartBuyerIdentityUpdate",
                )

    # ==================== CATALOG ====================

    async def fetch_products(self, first: int = 20, query: Optional[str] = None) -> List[Product]:
        """Fetch a page of products with their variants."""
        async for attempt in self._retrying():
            with attempt:
                data = await self._graphql(
                    queries.PRODUCTS_QUERY, {"first": first, "query": query}, "products"
                )
        edges = (data.get("products") or {}).get("edges") or []
        return [Product.from_node(edge["node"]) for edge in edges]

    # ==================== ORDERS ====================

    async def fetch_customer_orders(self, customer_access_token: str, first: int = 20) -> List[CustomerOrder]:
        """
        Fetch the customer's order history, newest first.

        Raises:
            AuthError: If the platform does not resolve the access token
        """
        async for attempt in self._retrying():
            with attempt:
                data = await self._graphql(
                    queries.CUSTOMER_ORDERS_QUERY,
                    {"customerAccessToken": customer_access_token, "first": first},
                    "customer.orders",
                )
        customer = data.get("customer")
        if customer is None:
            raise AuthError(ERROR_CUSTOMER_TOKEN, code="INVALID_CUSTOMER_TOKEN")
        edges = (customer.get("orders") or {}).get("edges") or []
        return [CustomerOrder.from_node(edge["node"]) for edge in edges]

    # ==================== WISHLIST ====================

    @property
    def supports_wishlist(self) -> bool:
        return self.wishlist_url is not None

    def _wishlist_request_args(self, identity) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if getattr(identity, "access_token", None):
            headers["Authorization"] = f"Bearer {identity.access_token}"
        return {"headers": headers}

    async def fetch_wishlist_keys(self, identity) -> List[str]:
        """Return the remote wishlist key set for ``identity`` (empty when unsupported)."""
        if not self.supports_wishlist:
            return []
        url = f"{self.wishlist_url}/customers/{identity.id}/wishlist"
        async for attempt in self._retrying():
            with attempt:
                response = await self._send("GET", url, "wishlist", **self._wishlist_request_args(identity))
        keys = _json_object(response, "wishlist").get("keys") or []
        if not isinstance(keys, list):
            raise NetworkError(f"{ERROR_NETWORK}: wishlist returned malformed keys")
        return [str(key) for key in keys]

    async def replace_wishlist_keys(self, identity, keys: Iterable[str]) -> List[str]:
        """Set the remote wishlist to exactly ``keys``; returns the stored set."""
        key_list = sorted(set(keys))
        if not self.supports_wishlist:
            return key_list
        url = f"{self.wishlist_url}/customers/{identity.id}/wishlist"
        async for attempt in self._retrying():
            with attempt:
                await self._send(
                    "PUT",
                    url,
                    "wishlist",
                    json={"keys": key_list},
                    **self._wishlist_request_args(identity),
                )
        return key_list
