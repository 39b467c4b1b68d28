"""Dispute state machine.

States: open → resolved | dismissed
"""

from enum import Enum

from baytup.core.exceptions import InvalidTransition


class DisputeStatus(str, Enum):
    """Dispute status values."""

    OPEN = "open"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class DisputeReason(str, Enum):
    """Why a party raised the dispute."""

    REFUND_REQUEST = "refund_request"
    PROPERTY_ISSUE = "property_issue"
    DAMAGE = "damage"
    NO_SHOW = "no_show"
    OTHER = "other"


DISPUTE_TRANSITIONS: dict[DisputeStatus, set[DisputeStatus]] = {
    DisputeStatus.OPEN: {DisputeStatus.RESOLVED, DisputeStatus.DISMISSED},
    DisputeStatus.RESOLVED: set(),
    DisputeStatus.DISMISSED: set(),
}


def assert_dispute_transition(current_status: str, new_status: str) -> None:
    """Validate dispute state transition."""
    allowed = DISPUTE_TRANSITIONS.get(DisputeStatus(current_status), set())
    if DisputeStatus(new_status) not in allowed:
        raise InvalidTransition("dispute", current_status, new_status)
