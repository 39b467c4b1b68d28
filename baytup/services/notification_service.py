"""Domain event fan-out to notification collaborators.

The booking core emits events; delivery (push, email, SMS) belongs to
subscribers. A failing subscriber never fails the operation that
emitted the event.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to a booking, escrow or payout."""

    name: str
    booking_id: UUID | None = None
    escrow_id: UUID | None = None
    payout_id: UUID | None = None
    actor_id: UUID | None = None
    amounts: dict[str, int] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class NotificationService:
    """Publish domain events to registered subscribers."""

    # Event names
    BOOKING_CREATED = "booking.created"
    BOOKING_APPROVED = "booking.approved"
    BOOKING_REJECTED = "booking.rejected"
    BOOKING_PAID = "booking.paid"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_CHECKED_IN = "booking.checked_in"
    BOOKING_CHECKED_OUT = "booking.checked_out"
    BOOKING_COMPLETED = "booking.completed"
    BOOKING_EXPIRED = "booking.expired"
    BOOKING_DISPUTED = "booking.disputed"
    HOST_RESPONSE_REMINDER = "booking.host_response_reminder"
    ESCROW_RELEASED = "escrow.released"
    ESCROW_FROZEN = "escrow.frozen"
    REFUND_PENDING = "booking.refund_pending"
    ESCROW_REFUNDED = "escrow.refunded"
    PAYOUT_STATUS_CHANGED = "payout.status_changed"

    def __init__(self) -> None:
        self._subscribers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._subscribers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    async def emit(self, event: DomainEvent) -> None:
        """Deliver an event to every subscriber, logging failures."""
        logger.info(
            f"Event {event.name} booking={event.booking_id} escrow={event.escrow_id} "
            f"payout={event.payout_id} amounts={event.amounts}"
        )
        for handler in list(self._subscribers):
            try:
                await handler(event)
            except Exception:
                logger.exception(f"Notification subscriber failed for {event.name}")


# Singleton instance
notification_service = NotificationService()
