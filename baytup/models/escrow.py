"""Escrow custody database models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from baytup.database import Base, JSONVariant, UTCDateTime, utcnow


class Escrow(Base):
    """Custody record for the funds of one paid booking.

    Breakdown invariant: host_amount + platform_amount == original_total.
    """

    __tablename__ = "escrows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), unique=True, nullable=False, index=True
    )
    payer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    payee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    host_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    original_total: Mapped[int] = mapped_column(Integer, nullable=False)
    provider_ref: Mapped[str | None] = mapped_column(String(255))

    status: Mapped[str] = mapped_column(
        String(20), default="held", index=True
    )  # held, frozen, released, refunded, partially_refunded

    # Release
    release_scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    release_trigger: Mapped[str | None] = mapped_column(String(30))
    released_amount: Mapped[int] = mapped_column(Integer, default=0)  # credited to host

    # Cancellation refund
    refunded_amount: Mapped[int] = mapped_column(Integer, default=0)  # returned to guest
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    refund_breakdown: Mapped[dict | None] = mapped_column(JSONVariant)

    # Dispute
    dispute_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("disputes.id"))
    frozen_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    freeze_reason: Mapped[str | None] = mapped_column(Text)
    resolution_host_portion: Mapped[int | None] = mapped_column(Integer)
    resolution_guest_portion: Mapped[int | None] = mapped_column(Integer)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def dispute_resolution(self) -> dict | None:
        if self.resolved_at is None:
            return None
        return {
            "host_portion": self.resolution_host_portion,
            "guest_portion": self.resolution_guest_portion,
            "resolved_by": self.resolved_by,
            "notes": self.resolution_notes,
        }


class EscrowHistory(Base):
    """Append-only audit trail of escrow actions."""

    __tablename__ = "escrow_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrows.id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str | None] = mapped_column(String(20))
    amount: Mapped[int | None] = mapped_column(Integer)
    performed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)  # None for system
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), index=True
    )
