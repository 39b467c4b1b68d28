"""Payout and payment-callback Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from baytup.domain.payout_state import PayoutMethod
from baytup.utils.validators import normalize_account_number, validate_rib


class PayoutRequest(BaseModel):
    """Schema for a host withdrawal request."""

    amount: int = Field(..., gt=0)
    currency: str = Field(default="DZD", min_length=3, max_length=3)
    payout_method: PayoutMethod = PayoutMethod.BANK_TRANSFER
    bank_name: str = Field(..., min_length=2, max_length=100)
    account_holder_name: str = Field(..., min_length=2, max_length=200)
    account_number: str = Field(..., min_length=4, max_length=34)
    rib: str = Field(..., description="20-digit RIB")
    iban: str | None = Field(None, max_length=34)
    swift_code: str | None = Field(None, max_length=11)
    host_notes: str | None = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("rib")
    @classmethod
    def validate_rib_format(cls, v: str) -> str:
        if not validate_rib(v):
            raise ValueError("RIB must be exactly 20 digits")
        return normalize_account_number(v)


class PayoutCompleteRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=100)
    admin_notes: str | None = Field(None, max_length=1000)


class PayoutRejectRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=1000)


class PayoutProcessRequest(BaseModel):
    admin_notes: str | None = Field(None, max_length=1000)


class PayoutResponse(BaseModel):
    """Schema for host payout response (account numbers masked)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    host_id: UUID
    amount: int
    fees: int
    final_amount: int
    currency: str
    payout_method: str
    bank_name: str
    account_holder_name: str
    rib_last4: str
    status: str
    requested_at: datetime
    processed_at: datetime | None
    completed_at: datetime | None
    estimated_arrival: datetime | None
    transaction_id: str | None
    rejection_reason: str | None


class PayoutListResponse(BaseModel):
    """Schema for paginated payout list."""

    payouts: list[PayoutResponse]
    total: int
    page: int
    page_size: int


class HostBalanceResponse(BaseModel):
    """Host's withdrawable earnings in one currency."""

    host_id: UUID
    currency: str
    total_earned: int
    reserved: int
    available: int
    minimum_payout: int


class WebhookAck(BaseModel):
    status: str  # ok, ignored
    booking_id: UUID | None = None
    outcome: str | None = None
