"""Core utilities and security modules."""

from baytup.core.encryption import EncryptionService
from baytup.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    GatewayError,
    GatewayTimeout,
    InsufficientBalance,
    InvalidEscrowState,
    InvalidTransition,
    ListingNotAvailable,
    NotFoundError,
    PaymentDeclined,
    SignatureVerificationFailed,
    SlotNoLongerAvailable,
    ValidationError,
)
from baytup.core.security import create_access_token, create_actor_token, verify_token

__all__ = [
    "EncryptionService",
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "GatewayError",
    "GatewayTimeout",
    "InsufficientBalance",
    "InvalidEscrowState",
    "InvalidTransition",
    "ListingNotAvailable",
    "NotFoundError",
    "PaymentDeclined",
    "SignatureVerificationFailed",
    "SlotNoLongerAvailable",
    "ValidationError",
    "create_access_token",
    "create_actor_token",
    "verify_token",
]
