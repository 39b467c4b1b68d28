"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


def _state_name(state: Any) -> str:
    return getattr(state, "value", state)


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ListingNotAvailable(AppException):
    """Listing not available exception."""

    def __init__(self, detail: str = "This listing is not available") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class SlotNoLongerAvailable(AppException):
    """Requested dates overlap an occupying booking."""

    def __init__(self, detail: str = "The selected dates are no longer available") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidTransition(AppException):
    """State machine guard failure."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        current = _state_name(current)
        target = _state_name(target)
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invalid {entity} transition: {current} → {target}",
        )


class InvalidEscrowState(AppException):
    """Escrow operation attempted from an invalid status."""

    def __init__(self, current: str, requested: str) -> None:
        current = _state_name(current)
        requested = _state_name(requested)
        self.current = current
        self.requested = requested
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Escrow is '{current}', cannot move to '{requested}'",
        )


class InsufficientBalance(AppException):
    """Insufficient balance for payout."""

    def __init__(self, detail: str = "Insufficient balance for this operation") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PaymentDeclined(AppException):
    """Gateway reported a terminal failed payment."""

    def __init__(self, detail: str = "Payment was declined") -> None:
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class GatewayError(AppException):
    """Payment gateway call failed."""

    def __init__(self, gateway: str, detail: str | None = None) -> None:
        self.gateway = gateway
        message = f"Payment gateway '{gateway}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


class GatewayTimeout(AppException):
    """Payment gateway call exceeded its time bound."""

    def __init__(self, gateway: str, timeout: float) -> None:
        self.gateway = gateway
        super().__init__(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Payment gateway '{gateway}' did not respond within {timeout:g}s",
        )


class SignatureVerificationFailed(AppException):
    """Webhook signature did not verify."""

    def __init__(self, detail: str = "Invalid webhook signature") -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
