"""
Error taxonomy for the shopping-session engine.

Every failure that crosses the commerce client boundary is one of the
classified exceptions below. Stores catch them and expose the ``ErrorKind``
on ``last_error`` instead of raising.
"""

from enum import Enum
from typing import Optional

# Common messages
ERROR_NETWORK = "Commerce backend unreachable"
ERROR_THROTTLED = "Commerce backend throttled the request"
ERROR_UNAUTHORIZED = "Unauthorized"
ERROR_CUSTOMER_TOKEN = "Customer access token is missing or expired"
ERROR_INVALID_REQUEST = "Invalid request"
ERROR_STORAGE_WRITE = "Failed to write local snapshot"


class ErrorKind(str, Enum):
    """Classified failure kinds surfaced on store ``last_error``."""

    NETWORK = "network"
    VALIDATION = "validation"
    AUTH = "auth"
    PERSISTENCE = "persistence"


class StorefrontError(Exception):
    """Base class for classified engine errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class NetworkError(StorefrontError):
    """Transient transport or server failure; safe to retry."""

    kind = ErrorKind.NETWORK


class ValidationError(StorefrontError):
    """Request rejected by the backend (e.g. insufficient stock)."""

    kind = ErrorKind.VALIDATION


class AuthError(StorefrontError):
    """Credential rejected; the session must sign out."""

    kind = ErrorKind.AUTH


class PersistenceError(StorefrontError):
    """Local storage failure. Logged, never fatal."""

    kind = ErrorKind.PERSISTENCE
