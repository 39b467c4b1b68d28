"""Booking state machine.

States:
- pending: Awaiting host approval (non instant-book listings)
- pending_payment: Approved or instant-book, waiting for the guest to pay
- confirmed: Reservation confirmed, payment not yet captured
- paid: Payment captured and held in escrow
- active: Guest checked in
- completed: Checked out and confirmed by both parties
- cancelled_by_guest / cancelled_by_host / cancelled_by_admin
- expired: Host did not respond before the deadline
- disputed: Admin flagged a claim on a finished booking
"""

from enum import Enum

from baytup.core.exceptions import InvalidTransition, ValidationError


class BookingStatus(str, Enum):
    """Booking status values."""

    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    PAID = "paid"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED_BY_GUEST = "cancelled_by_guest"
    CANCELLED_BY_HOST = "cancelled_by_host"
    CANCELLED_BY_ADMIN = "cancelled_by_admin"
    EXPIRED = "expired"
    DISPUTED = "disputed"


class ActorRole(str, Enum):
    """Roles that can act on a booking."""

    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"


CANCELLED_STATUSES = {
    BookingStatus.CANCELLED_BY_GUEST,
    BookingStatus.CANCELLED_BY_HOST,
    BookingStatus.CANCELLED_BY_ADMIN,
}

CANCELLABLE_STATUSES = {
    BookingStatus.PENDING,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.PAID,
}

DISPUTABLE_STATUSES = {BookingStatus.COMPLETED} | CANCELLED_STATUSES

TERMINAL_STATUSES = DISPUTABLE_STATUSES | {BookingStatus.EXPIRED, BookingStatus.DISPUTED}

# Statuses that block the dates for other guests. Unpaid requests are
# counted conservatively so two guests cannot both reach payment.
OCCUPYING_STATUSES = {
    BookingStatus.PENDING,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.PAID,
    BookingStatus.ACTIVE,
    BookingStatus.COMPLETED,
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.PENDING_PAYMENT,
        BookingStatus.CONFIRMED,
        BookingStatus.EXPIRED,
    } | CANCELLED_STATUSES,
    BookingStatus.PENDING_PAYMENT: {BookingStatus.CONFIRMED} | CANCELLED_STATUSES,
    BookingStatus.CONFIRMED: {BookingStatus.PAID} | CANCELLED_STATUSES,
    BookingStatus.PAID: {BookingStatus.ACTIVE} | CANCELLED_STATUSES,
    BookingStatus.ACTIVE: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: {BookingStatus.DISPUTED},
    BookingStatus.CANCELLED_BY_GUEST: {BookingStatus.DISPUTED},
    BookingStatus.CANCELLED_BY_HOST: {BookingStatus.DISPUTED},
    BookingStatus.CANCELLED_BY_ADMIN: {BookingStatus.DISPUTED},
    BookingStatus.EXPIRED: set(),
    BookingStatus.DISPUTED: set(),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether a booking may move from current to target."""
    try:
        current_status = BookingStatus(current)
        target_status = BookingStatus(target)
    except ValueError:
        return False
    return target_status in BOOKING_TRANSITIONS[current_status]


def assert_booking_transition(current: str, target: str) -> None:
    """Validate booking state transition.

    Raises:
        InvalidTransition: If transition is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransition("booking", current, target)


def cancellation_status_for(role: str) -> BookingStatus:
    """Map the cancelling actor's role to the cancelled status."""
    try:
        actor_role = ActorRole(role)
    except ValueError:
        raise ValidationError(f"Unknown actor role: {role}")
    return {
        ActorRole.GUEST: BookingStatus.CANCELLED_BY_GUEST,
        ActorRole.HOST: BookingStatus.CANCELLED_BY_HOST,
        ActorRole.ADMIN: BookingStatus.CANCELLED_BY_ADMIN,
    }[actor_role]


def is_occupying(status: str) -> bool:
    return status in {s.value for s in OCCUPYING_STATUSES}
