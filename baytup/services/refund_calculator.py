"""Refund calculator.

Splits a booking's original payment between the guest refund, what the
host keeps, and what the platform retains when a booking is cancelled.

Fee rules:
- Guest service fee: refunded only inside the grace period or when the host cancels
- Cleaning fee: refunded only when cancelled before check-in
- Host commission: charged only on the portion the host keeps
- Host cancellation: the guest gets everything back

Distribution invariant: guest_refund + host_receives + platform_keeps == total_amount.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Protocol

from baytup.config import settings
from baytup.core.exceptions import ValidationError
from baytup.domain.booking_state import CANCELLABLE_STATUSES
from baytup.domain.cancellation_policy import (
    POLICY_RULES,
    PolicyRules,
    normalize_policy,
    policy_refund_percent,
)
from baytup.services.pricing_service import percent_of

HUNDRED = Decimal("100")


class RefundReason(str, Enum):
    """What triggered the refund computation."""

    GUEST_CANCELLATION = "guest_cancellation"
    HOST_CANCELLATION = "host_cancellation"
    ADMIN = "admin"
    DISPUTE = "dispute"


class RefundableBooking(Protocol):
    """Booking attributes the calculator reads."""

    start_date: date
    end_date: date
    created_at: datetime | None
    nights: int
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    taxes: int
    total_amount: int
    cancellation_policy: str


@dataclass(frozen=True)
class RefundAmounts:
    subtotal: int
    subtotal_percent: Decimal
    cleaning_fee: int
    guest_service_fee: int
    taxes: int
    total: int


@dataclass(frozen=True)
class RefundDistribution:
    guest_refund: int
    host_receives: int
    host_loss: int
    host_commission_on_kept: int
    platform_keeps: int


@dataclass(frozen=True)
class CancellationTiming:
    cancellation_date: datetime
    reason: str
    is_before_check_in: bool
    is_after_check_out: bool
    is_during_stay: bool
    is_in_grace_period: bool


@dataclass(frozen=True)
class RefundResult:
    """Full refund breakdown for one cancellation."""

    refund: RefundAmounts
    distribution: RefundDistribution
    cancellation: CancellationTiming
    policy: str
    summary: str

    def to_dict(self) -> dict:
        """JSON-safe representation stored on the booking and escrow."""
        data = asdict(self)
        data["refund"]["subtotal_percent"] = str(self.refund.subtotal_percent)
        data["cancellation"]["cancellation_date"] = self.cancellation.cancellation_date.isoformat()
        return data


def day_start(day: date) -> datetime:
    """Midnight UTC of a calendar date (check-in/check-out moment)."""
    return datetime.combine(day, time.min, tzinfo=UTC)


class RefundCalculator:
    """Pure refund computation; no I/O."""

    def __init__(
        self,
        policy_rules: PolicyRules | None = None,
        grace_period_hours: int | None = None,
        grace_min_days_before_check_in: int | None = None,
        host_commission_rate: Decimal | None = None,
    ) -> None:
        self.policy_rules = policy_rules or POLICY_RULES
        self.grace_period_hours = (
            settings.refund_grace_period_hours if grace_period_hours is None else grace_period_hours
        )
        self.grace_min_days_before_check_in = (
            settings.refund_grace_min_days_before_check_in
            if grace_min_days_before_check_in is None
            else grace_min_days_before_check_in
        )
        self.host_commission_rate = host_commission_rate or settings.host_commission_rate

    def is_in_grace_period(self, booking: RefundableBooking, cancellation_date: datetime) -> bool:
        """Cancelled shortly after booking, with check-in still far away."""
        if booking.created_at is None:
            return False
        hours_since_booking = (cancellation_date - booking.created_at).total_seconds() / 3600
        days_until_check_in = (
            day_start(booking.start_date) - cancellation_date
        ).total_seconds() / 86400
        return (
            0 <= hours_since_booking <= self.grace_period_hours
            and days_until_check_in >= self.grace_min_days_before_check_in
        )

    @staticmethod
    def unused_nights_percent(booking: RefundableBooking, departure: datetime) -> Decimal:
        """Share of booked nights not yet used at the departure moment."""
        if booking.nights <= 0:
            return Decimal("0")
        elapsed_days = (departure - day_start(booking.start_date)).total_seconds() / 86400
        nights_used = math.ceil(elapsed_days)
        nights_unused = max(0, booking.nights - nights_used)
        return (Decimal(nights_unused) * HUNDRED / Decimal(booking.nights)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )

    def calculate(
        self,
        booking: RefundableBooking,
        *,
        reason: str | RefundReason = RefundReason.GUEST_CANCELLATION,
        cancellation_date: datetime | None = None,
        custom_refund_percent: Decimal | int | None = None,
    ) -> RefundResult:
        """Compute the refund breakdown for a cancellation.

        Args:
            booking: Booking with frozen pricing
            reason: Refund trigger
            cancellation_date: Moment of cancellation, defaults to now
            custom_refund_percent: Admin/dispute override of the subtotal percentage

        Returns:
            RefundResult with refund amounts, distribution and summary
        """
        reason = RefundReason(reason)
        cancellation_date = cancellation_date or datetime.now(UTC)
        policy = normalize_policy(booking.cancellation_policy)

        check_in = day_start(booking.start_date)
        check_out = day_start(booking.end_date)
        is_before_check_in = cancellation_date < check_in
        is_after_check_out = cancellation_date >= check_out
        is_host_cancellation = reason == RefundReason.HOST_CANCELLATION
        in_grace = not is_host_cancellation and self.is_in_grace_period(booking, cancellation_date)

        if custom_refund_percent is not None:
            subtotal_percent = Decimal(custom_refund_percent)
            if not Decimal("0") <= subtotal_percent <= HUNDRED:
                raise ValidationError("Refund percent must be between 0 and 100")
        elif is_host_cancellation or in_grace:
            subtotal_percent = HUNDRED
        elif is_after_check_out:
            subtotal_percent = Decimal("0")
        elif is_before_check_in:
            hours_before = (check_in - cancellation_date).total_seconds() / 3600
            subtotal_percent = policy_refund_percent(policy, hours_before, self.policy_rules)
        else:
            subtotal_percent = self.unused_nights_percent(booking, cancellation_date)

        subtotal = booking.subtotal or 0
        cleaning_fee = booking.cleaning_fee or 0
        guest_service_fee = booking.guest_service_fee or 0
        taxes = booking.taxes or 0

        subtotal_refund = percent_of(subtotal, subtotal_percent / HUNDRED)
        cleaning_refund = cleaning_fee if (is_before_check_in or is_host_cancellation) else 0
        service_fee_refund = guest_service_fee if (in_grace or is_host_cancellation) else 0

        refundable_base = subtotal + cleaning_fee
        refunded_base = subtotal_refund + cleaning_refund
        tax_refund = (
            percent_of(taxes, Decimal(refunded_base) / Decimal(refundable_base))
            if refundable_base > 0
            else 0
        )
        total_refund = subtotal_refund + cleaning_refund + service_fee_refund + tax_refund

        host_kept_base = refundable_base - refunded_base
        commission_on_kept = percent_of(host_kept_base, self.host_commission_rate)
        host_receives = host_kept_base - commission_on_kept
        platform_keeps = (
            (guest_service_fee - service_fee_refund) + commission_on_kept + (taxes - tax_refund)
        )

        refund = RefundAmounts(
            subtotal=subtotal_refund,
            subtotal_percent=subtotal_percent,
            cleaning_fee=cleaning_refund,
            guest_service_fee=service_fee_refund,
            taxes=tax_refund,
            total=total_refund,
        )
        return RefundResult(
            refund=refund,
            distribution=RefundDistribution(
                guest_refund=total_refund,
                host_receives=host_receives,
                host_loss=refunded_base,
                host_commission_on_kept=commission_on_kept,
                platform_keeps=platform_keeps,
            ),
            cancellation=CancellationTiming(
                cancellation_date=cancellation_date,
                reason=reason.value,
                is_before_check_in=is_before_check_in,
                is_after_check_out=is_after_check_out,
                is_during_stay=not is_before_check_in and not is_after_check_out,
                is_in_grace_period=in_grace,
            ),
            policy=policy.value,
            summary=self._summary(refund, reason, is_before_check_in, in_grace, guest_service_fee),
        )

    def calculate_dispute_refund(
        self,
        booking: RefundableBooking,
        guest_percent: Decimal | int,
        cancellation_date: datetime | None = None,
    ) -> RefundResult:
        """Refund with an admin-chosen share of the subtotal."""
        return self.calculate(
            booking,
            reason=RefundReason.DISPUTE,
            cancellation_date=cancellation_date,
            custom_refund_percent=guest_percent,
        )

    @staticmethod
    def can_refund(booking) -> tuple[bool, str | None]:
        """Check if a booking's payment can still be refunded."""
        if booking.payment_status in ("refunded", "partially_refunded"):
            return False, "Refund has already been processed"
        if booking.payment_status == "refund_pending":
            return False, "A refund is awaiting settlement"
        if booking.payment_status != "paid":
            return False, "Payment has not been captured"
        if booking.status not in {s.value for s in CANCELLABLE_STATUSES}:
            return False, f"Cannot refund a {booking.status} booking"
        return True, None

    @staticmethod
    def _summary(
        refund: RefundAmounts,
        reason: RefundReason,
        is_before_check_in: bool,
        in_grace: bool,
        guest_service_fee: int,
    ) -> str:
        if reason == RefundReason.HOST_CANCELLATION:
            parts = ["Cancelled by host: full refund"]
        elif in_grace:
            parts = ["Grace period: full refund"]
        elif refund.subtotal_percent == HUNDRED:
            parts = ["Full refund of the stay"]
        elif refund.subtotal_percent == 0:
            parts = ["No refund of the stay"]
        else:
            parts = [f"{refund.subtotal_percent}% of the stay refunded"]

        if refund.cleaning_fee > 0:
            parts.append("cleaning fee refunded")
        elif not is_before_check_in:
            parts.append("cleaning fee not refunded (after check-in)")

        if refund.guest_service_fee > 0:
            parts.append(f"service fee refunded ({refund.guest_service_fee})")
        elif guest_service_fee > 0:
            parts.append(f"service fee not refunded ({guest_service_fee} retained)")

        return ". ".join(parts) + "."


refund_calculator = RefundCalculator()
