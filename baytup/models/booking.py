"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from baytup.database import Base, JSONVariant, UTCDateTime, utcnow


class Booking(Base):
    """Booking model."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # BTP-XXXXXX
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    # Copied from the listing at creation, never updated afterwards
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Dates (end exclusive)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Guests
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    infants: Mapped[int] = mapped_column(Integer, default=0)
    special_requests: Mapped[str | None] = mapped_column(Text)

    # Pricing (minor units of the settlement currency)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)  # base_price * nights
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0)
    guest_service_fee: Mapped[int] = mapped_column(Integer, default=0)
    host_commission: Mapped[int] = mapped_column(Integer, default=0)
    taxes: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    host_payout: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    cancellation_policy: Mapped[str] = mapped_column(String(20), default="moderate")

    # Payment
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # card, slickpay, bank_transfer, cash
    payment_provider: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # stripe, slickpay, manual - fixed at creation
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, authorized, paid, failed, refund_pending, refunded, partially_refunded
    payment_transaction_id: Mapped[str | None] = mapped_column(String(255), index=True)
    paid_amount: Mapped[int] = mapped_column(Integer, default=0)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    refund_breakdown: Mapped[dict | None] = mapped_column(JSONVariant)

    # Status
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    # Host response (non instant-book)
    host_response_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    host_responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    host_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_expired: Mapped[bool] = mapped_column(Boolean, default=False)

    # Check-in / check-out
    checked_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    check_in_confirmed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    check_in_notes: Mapped[str | None] = mapped_column(Text)
    checked_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    check_out_confirmed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    check_out_notes: Mapped[str | None] = mapped_column(Text)
    damage_report: Mapped[str | None] = mapped_column(Text)

    # Completion (both flags required)
    host_confirmed_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    guest_confirmed_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Cancellation
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    cancelled_by_role: Mapped[str | None] = mapped_column(String(10))  # guest, host, admin
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    cancellation_reason: Mapped[str | None] = mapped_column(String(30))
    cancellation_note: Mapped[str | None] = mapped_column(Text)
    cancellation_fee: Mapped[int] = mapped_column(Integer, default=0)

    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Optimistic lock against concurrent guest/host/admin writes
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def guest_count(self) -> int:
        return self.adults + self.children


class BookingStatusHistory(Base):
    """Append-only record of every booking status change."""

    __tablename__ = "booking_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    actor_role: Mapped[str | None] = mapped_column(String(10))  # guest, host, admin, system
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
