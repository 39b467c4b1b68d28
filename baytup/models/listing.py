"""Listing database model (booking-relevant columns only)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from baytup.database import Base, UTCDateTime, utcnow


class Listing(Base):
    """A stay or vehicle offered by a host."""

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="stay")  # stay, vehicle
    status: Mapped[str] = mapped_column(
        String(20), default="active", index=True
    )  # draft, active, inactive, suspended

    # Booking rules
    instant_book: Mapped[bool] = mapped_column(Boolean, default=False)
    cancellation_policy: Mapped[str] = mapped_column(String(20), default="moderate")
    min_nights: Mapped[int] = mapped_column(Integer, default=1)
    max_nights: Mapped[int | None] = mapped_column(Integer)
    max_guests: Mapped[int] = mapped_column(Integer, default=2)

    # Pricing (minor units)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="DZD")

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    @property
    def is_bookable(self) -> bool:
        return self.status == "active"
