"""Escrow custody state machine.

held -> released is the normal path; held -> frozen -> released when a
dispute is raised. A cancellation refund empties the escrow into
refunded (all to guest) or partially_refunded (split guest/host).
"""

from enum import Enum

from baytup.core.exceptions import InvalidEscrowState


class EscrowStatus(str, Enum):
    """Escrow status values."""

    HELD = "held"
    FROZEN = "frozen"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class EscrowAction(str, Enum):
    """Actions recorded in the escrow history log."""

    CREATED = "created"
    CAPTURED = "captured"
    RELEASED = "released"
    FROZEN = "frozen"
    UNFROZEN = "unfrozen"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"


class ReleaseTrigger(str, Enum):
    """Why funds were released to the host."""

    BOOKING_COMPLETED = "booking_completed"
    AUTO_RELEASE = "auto_release"
    ADMIN_OVERRIDE = "admin_override"
    DISPUTE_RESOLUTION = "dispute_resolution"
    CANCELLATION = "cancellation"


ESCROW_TRANSITIONS: dict[EscrowStatus, set[EscrowStatus]] = {
    EscrowStatus.HELD: {
        EscrowStatus.FROZEN,
        EscrowStatus.RELEASED,
        EscrowStatus.REFUNDED,
        EscrowStatus.PARTIALLY_REFUNDED,
    },
    EscrowStatus.FROZEN: {
        EscrowStatus.HELD,
        EscrowStatus.RELEASED,
        EscrowStatus.REFUNDED,
        EscrowStatus.PARTIALLY_REFUNDED,
    },
    EscrowStatus.RELEASED: set(),
    EscrowStatus.REFUNDED: set(),
    EscrowStatus.PARTIALLY_REFUNDED: set(),
}

# Released states that credit the host's withdrawable balance
HOST_CREDITED_STATUSES = {EscrowStatus.RELEASED, EscrowStatus.PARTIALLY_REFUNDED}


def assert_escrow_transition(current: str, target: str) -> None:
    """Validate escrow state transition.

    Raises:
        InvalidEscrowState: Naming the current and requested status
    """
    allowed = ESCROW_TRANSITIONS.get(EscrowStatus(current), set())
    if EscrowStatus(target) not in allowed:
        raise InvalidEscrowState(current, target)
