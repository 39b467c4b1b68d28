"""Pydantic schemas for API validation."""

from baytup.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatusHistoryResponse,
    RefundPreviewResponse,
)
from baytup.schemas.escrow import (
    DisputeCreate,
    DisputeResponse,
    DisputeSplit,
    EscrowDetailResponse,
    EscrowResponse,
)
from baytup.schemas.payment import (
    HostBalanceResponse,
    PayoutRequest,
    PayoutResponse,
    WebhookAck,
)

__all__ = [
    # Booking
    "BookingCreate",
    "BookingCancelRequest",
    "BookingResponse",
    "BookingListResponse",
    "BookingStatusHistoryResponse",
    "RefundPreviewResponse",
    # Escrow
    "EscrowResponse",
    "EscrowDetailResponse",
    "DisputeCreate",
    "DisputeSplit",
    "DisputeResponse",
    # Payout
    "PayoutRequest",
    "PayoutResponse",
    "HostBalanceResponse",
    "WebhookAck",
]
