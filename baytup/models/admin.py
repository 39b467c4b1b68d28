"""Admin-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from baytup.database import Base, JSONVariant, UTCDateTime, utcnow


class AuditLog(Base):
    """Audit log for tracking privileged and financial actions."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)

    # Action details
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    reason: Mapped[str | None] = mapped_column(Text)

    # Changes
    old_values: Mapped[dict | None] = mapped_column(JSONVariant)
    new_values: Mapped[dict | None] = mapped_column(JSONVariant)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), index=True
    )


class Dispute(Base):
    """Dispute raised on a paid booking."""

    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    raised_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    raised_by_role: Mapped[str] = mapped_column(String(10), nullable=False)

    # Details
    reason: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # refund_request, property_issue, damage, no_show, other
    description: Mapped[str | None] = mapped_column(Text)

    # Status: open → resolved | dismissed
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)

    # Resolution
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    host_portion: Mapped[int | None] = mapped_column()
    guest_portion: Mapped[int | None] = mapped_column()
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
