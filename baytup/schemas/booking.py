"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from baytup.domain.payment_state import PaymentMethod


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    listing_id: UUID
    start_date: date
    end_date: date
    adults: int = Field(default=1, ge=1, le=20)
    children: int = Field(default=0, ge=0, le=10)
    infants: int = Field(default=0, ge=0, le=5)
    payment_method: PaymentMethod = PaymentMethod.CARD
    special_requests: str | None = Field(None, max_length=1000)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: date, info) -> date:
        start_date = info.data.get("start_date")
        if start_date and v <= start_date:
            raise ValueError("end_date must be after start_date")
        return v


class BookingRejectRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: str | None = Field(None, max_length=30)
    note: str | None = Field(None, max_length=1000)
    # Admin only: override the policy percentage of the stay refunded
    custom_refund_percent: Decimal | None = Field(None, ge=0, le=100)


class ManualPaymentConfirm(BaseModel):
    """Host/admin confirmation that a bank transfer or cash payment arrived."""

    reference: str | None = Field(None, max_length=255)
    note: str | None = Field(None, max_length=1000)


class ManualRefundConfirm(BaseModel):
    """Admin record of a refund sent outside the payment provider."""

    reference: str = Field(..., min_length=1, max_length=255)
    note: str | None = Field(None, max_length=1000)


class CheckInRequest(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class CheckOutRequest(BaseModel):
    notes: str | None = Field(None, max_length=1000)
    damage_report: str | None = Field(None, max_length=2000)


class MarkDisputedRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=1000)


class PaymentIntentResponse(BaseModel):
    """Client-side payload to complete payment with the provider."""

    booking_id: UUID
    provider: str
    provider_transaction_id: str
    client_payload: dict


class PaymentVerificationResponse(BaseModel):
    booking_id: UUID
    status: str
    payment_status: str
    outcome: str  # paid, pending, failed, already_paid, underpaid


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    listing_id: UUID
    guest_id: UUID
    host_id: UUID

    # Dates
    start_date: date
    end_date: date
    nights: int

    # Guests
    adults: int
    children: int
    infants: int
    guest_count: int
    special_requests: str | None

    # Pricing
    base_price: int
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    host_commission: int
    taxes: int
    total_amount: int
    host_payout: int
    currency: str
    cancellation_policy: str

    # Payment
    payment_method: str
    payment_provider: str
    payment_status: str
    paid_amount: int
    paid_at: datetime | None
    refund_amount: int
    refunded_at: datetime | None

    # Status
    status: str
    host_response_deadline: datetime | None
    host_responded_at: datetime | None
    confirmed_at: datetime | None

    # Stay
    checked_in_at: datetime | None
    checked_out_at: datetime | None
    host_confirmed_completion: bool
    guest_confirmed_completion: bool
    completed_at: datetime | None

    # Cancellation
    cancelled_by_role: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    cancellation_fee: int

    created_at: datetime
    updated_at: datetime


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    items: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: str | None
    to_status: str
    actor_id: UUID | None
    actor_role: str | None
    note: str | None
    created_at: datetime


class RefundPreviewResponse(BaseModel):
    """What a cancellation right now would refund."""

    booking_id: UUID
    policy: str
    policy_description: str
    refundable: bool
    not_refundable_reason: str | None = None
    refund_total: int
    subtotal_percent: Decimal
    guest_refund: int
    host_receives: int
    platform_keeps: int
    is_in_grace_period: bool
    summary: str
