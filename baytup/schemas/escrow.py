"""Escrow and dispute Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from baytup.domain.dispute_state import DisputeReason


class EscrowHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    from_status: str | None
    to_status: str | None
    amount: int | None
    performed_by: UUID | None
    note: str | None
    created_at: datetime


class EscrowResponse(BaseModel):
    """Schema for escrow response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    payer_id: UUID
    payee_id: UUID
    amount: int
    currency: str
    host_amount: int
    platform_amount: int
    original_total: int
    status: str
    release_scheduled_at: datetime | None
    released_at: datetime | None
    release_trigger: str | None
    released_amount: int
    refunded_amount: int
    refunded_at: datetime | None
    dispute_id: UUID | None
    frozen_at: datetime | None
    freeze_reason: str | None
    dispute_resolution: dict | None
    created_at: datetime


class EscrowDetailResponse(EscrowResponse):
    history: list[EscrowHistoryResponse] = []


class EscrowReleaseRequest(BaseModel):
    note: str | None = Field(None, max_length=1000)


class EscrowFreezeRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=1000)


class EscrowUnfreezeRequest(BaseModel):
    note: str | None = Field(None, max_length=1000)


class DisputeSplit(BaseModel):
    """Admin split of the held host amount."""

    host_portion: int = Field(..., ge=0)
    guest_portion: int = Field(..., ge=0)
    notes: str | None = Field(None, max_length=2000)


class DisputeCreate(BaseModel):
    """Schema for opening a dispute."""

    booking_id: UUID
    reason: DisputeReason
    description: str | None = Field(None, max_length=5000)


class DisputeDismissRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class DisputeResponse(BaseModel):
    """Schema for dispute response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    raised_by: UUID
    raised_by_role: str
    reason: str
    description: str | None
    status: str
    resolution_notes: str | None
    host_portion: int | None
    guest_portion: int | None
    resolved_by: UUID | None
    resolved_at: datetime | None
    created_at: datetime
