"""
Engine configuration.

Values come from environment variables; a ``.env`` file in the working
directory is loaded first when present. Settings are resolved once and passed
explicitly to the session, never read from module globals at call time.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_VERSION = "2025-01"
DEFAULT_STORAGE_PREFIX = "storefront:"


def _get_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _get_int(key: str, default: int) -> int:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_decimal(key: str, default: str) -> Decimal:
    raw = os.environ.get(key, "").strip() or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        return Decimal(default)


@dataclass(frozen=True)
class Settings:
    """Resolved engine settings."""

    store_domain: str
    storefront_token: str
    api_version: str = DEFAULT_API_VERSION
    wishlist_service_url: Optional[str] = None
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    state_dir: Path = Path(".storefront")
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    cart_clear_on_sign_out: bool = False
    wishlist_clear_on_sign_out: bool = True
    free_shipping_threshold: Decimal = Decimal("100.00")
    flat_shipping_rate: Decimal = Decimal("9.99")
    redis_url: Optional[str] = None
    redis_token: Optional[str] = None

    @property
    def graphql_url(self) -> str:
        """Storefront GraphQL endpoint for the configured shop."""
        domain = self.store_domain.removeprefix("https://").rstrip("/")
        return f"https://{domain}/api/{self.api_version}/graphql.json"

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url and self.redis_token)


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional path to a ``.env`` file. Defaults to ``./.env``.

    Returns:
        Settings instance

    Raises:
        ValueError: If the store domain or storefront token is missing.
    """
    load_dotenv(env_file or Path.cwd() / ".env")

    store_domain = os.environ.get("SHOPIFY_STORE_DOMAIN", "").strip()
    token = os.environ.get("SHOPIFY_STOREFRONT_TOKEN", "").strip()
    if not store_domain or not token:
        raise ValueError("SHOPIFY_STORE_DOMAIN and SHOPIFY_STOREFRONT_TOKEN must be set")

    return Settings(
        store_domain=store_domain,
        storefront_token=token,
        api_version=os.environ.get("SHOPIFY_API_VERSION", "").strip() or DEFAULT_API_VERSION,
        wishlist_service_url=os.environ.get("WISHLIST_SERVICE_URL", "").strip() or None,
        timeout_seconds=_get_float("COMMERCE_TIMEOUT_SECONDS", 10.0),
        max_attempts=max(1, _get_int("COMMERCE_MAX_ATTEMPTS", 3)),
        state_dir=Path(os.environ.get("STOREFRONT_STATE_DIR", "").strip() or ".storefront"),
        storage_prefix=os.environ.get("STOREFRONT_STORAGE_PREFIX", "").strip() or DEFAULT_STORAGE_PREFIX,
        cart_clear_on_sign_out=_get_bool("CART_CLEAR_ON_SIGN_OUT", False),
        wishlist_clear_on_sign_out=_get_bool("WISHLIST_CLEAR_ON_SIGN_OUT", True),
        free_shipping_threshold=_get_decimal("FREE_SHIPPING_THRESHOLD", "100.00"),
        flat_shipping_rate=_get_decimal("FLAT_SHIPPING_RATE", "9.99"),
        redis_url=os.environ.get("UPSTASH_REDIS_REST_URL", "").strip() or None,
        redis_token=os.environ.get("UPSTASH_REDIS_REST_TOKEN", "").strip() or None,
    )
