"""Host withdrawal request state machine.

States:
- pending: Requested by host, funds reserved against the balance
- processing: Admin started the bank transfer
- completed: Transfer done
- rejected: Admin refused the request, funds return to the balance
- cancelled: Host withdrew the request while still pending
"""

from enum import Enum

from baytup.core.exceptions import InvalidTransition


class PayoutStatus(str, Enum):
    """Payout status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PayoutMethod(str, Enum):
    """How the host is paid."""

    BANK_TRANSFER = "bank_transfer"
    CCP = "ccp"
    BARIDI_MOB = "baridi_mob"
    OTHER = "other"


PAYOUT_TRANSITIONS: dict[PayoutStatus, set[PayoutStatus]] = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.REJECTED, PayoutStatus.CANCELLED},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED},
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.REJECTED: set(),
    PayoutStatus.CANCELLED: set(),
}

# Requests that count against the available balance
BALANCE_RESERVING_STATUSES = {
    PayoutStatus.PENDING,
    PayoutStatus.PROCESSING,
    PayoutStatus.COMPLETED,
}


def assert_payout_transition(current: str, target: str) -> None:
    """Validate payout state transition.

    Args:
        current: Current payout status
        target: Target payout status

    Raises:
        InvalidTransition: If transition is not allowed
    """
    allowed = PAYOUT_TRANSITIONS.get(PayoutStatus(current), set())
    if PayoutStatus(target) not in allowed:
        raise InvalidTransition("payout", current, target)
