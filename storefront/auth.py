"""Auth Bridge - identity signal consumed by the stores.

The identity provider itself is external; it calls ``sign_in``/``sign_out``
here and the session reacts to the resulting events.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.observable import Observable

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """Signed-in customer.

    ``access_token`` is the customer access token for customer-scoped
    queries; ``cart_id`` the account's remote cart if the provider keeps one.
    """
    id: str
    email: str
    access_token: Optional[str] = None
    cart_id: Optional[str] = None


class AuthEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


class AuthBridge(Observable):
    """Holds the current identity and notifies ``(event, identity)`` listeners."""

    def __init__(self, identity: Optional[Identity] = None):
        super().__init__()
        self._identity = identity

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_signed_in(self) -> bool:
        return self._identity is not None

    def sign_in(self, identity: Identity) -> None:
        if self._identity == identity:
            return
        self._identity = identity
        logger.info(f"Signed in as {sanitize_id_for_logging(identity.id)}")
        self._notify(AuthEvent.SIGNED_IN, identity)

    def sign_out(self) -> None:
        if self._identity is None:
            return
        previous = self._identity
        self._identity = None
        logger.info(f"Signed out {sanitize_id_for_logging(previous.id)}")
        self._notify(AuthEvent.SIGNED_OUT, previous)
