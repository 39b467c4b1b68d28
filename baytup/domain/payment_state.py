"""Booking payment state machine."""

from enum import Enum

from baytup.core.exceptions import InvalidTransition


class PaymentStatus(str, Enum):
    """Payment status values."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    PAID = "paid"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMethod(str, Enum):
    """How the guest pays."""

    CARD = "card"
    SLICKPAY = "slickpay"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


# Methods settled outside a gateway, confirmed by host or admin
MANUAL_METHODS = {PaymentMethod.BANK_TRANSFER, PaymentMethod.CASH}

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.AUTHORIZED, PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.AUTHORIZED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {
        PaymentStatus.REFUND_PENDING,
        PaymentStatus.REFUNDED,
        PaymentStatus.PARTIALLY_REFUNDED,
    },
    # Owed to the guest, not yet confirmed sent by the provider or an admin
    PaymentStatus.REFUND_PENDING: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING},
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.PARTIALLY_REFUNDED: set(),
}


def assert_payment_transition(current: str, target: str) -> None:
    allowed = PAYMENT_TRANSITIONS.get(PaymentStatus(current), set())
    if PaymentStatus(target) not in allowed:
        raise InvalidTransition("payment", current, target)


def is_manual_method(method: str) -> bool:
    return method in {m.value for m in MANUAL_METHODS}
