"""Booking lifecycle service.

Owns every booking status change. Each transition is validated against
the booking state machine and written together with a
booking_status_history row in the same transaction. Payment capture
opens the escrow; completion and cancellation settle it.

Concurrency:
- Double booking: availability check, insert, flush, recheck. On
  PostgreSQL the bookings_no_overlap exclusion constraint backs this up.
- Poll/webhook races: the booking row is locked (SELECT ... FOR UPDATE)
  and payment confirmation is a no-op once the payment is paid.
- Lost updates: bookings carry a version column (optimistic locking).
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from baytup.config import settings
from baytup.core.exceptions import (
    InvalidTransition,
    ListingNotAvailable,
    NotFoundError,
    SlotNoLongerAvailable,
    ValidationError,
)
from baytup.core.permissions import Actor, assert_booking_party, require_role
from baytup.database import utcnow
from baytup.domain.booking_state import (
    OCCUPYING_STATUSES,
    ActorRole,
    BookingStatus,
    assert_booking_transition,
    cancellation_status_for,
)
from baytup.domain.escrow_state import EscrowStatus, ReleaseTrigger
from baytup.domain.payment_state import (
    PaymentMethod,
    PaymentStatus,
    assert_payment_transition,
    is_manual_method,
)
from baytup.gateways.base import GatewayType, PayerInfo, PaymentIntent
from baytup.models.booking import Booking, BookingStatusHistory
from baytup.models.listing import Listing
from baytup.models.user import User
from baytup.schemas.booking import BookingCreate
from baytup.services.audit_service import audit_service
from baytup.services.escrow_service import EscrowService, escrow_service
from baytup.services.gateway_service import GatewayService, gateway_service
from baytup.services.notification_service import DomainEvent, notification_service
from baytup.services.pricing_service import pricing_service
from baytup.services.refund_calculator import (
    RefundCalculator,
    RefundReason,
    RefundResult,
    refund_calculator,
)
from baytup.utils.booking_number import generate_booking_number

logger = logging.getLogger(__name__)

SYSTEM_ROLE = "system"
OVERLAP_CONSTRAINT = "bookings_no_overlap"

REFUND_REASON_BY_ROLE = {
    ActorRole.GUEST: RefundReason.GUEST_CANCELLATION,
    ActorRole.HOST: RefundReason.HOST_CANCELLATION,
    ActorRole.ADMIN: RefundReason.ADMIN,
}


@dataclass
class PaymentVerification:
    """Outcome of reconciling a booking with its payment provider."""

    booking: Booking
    outcome: str  # paid, already_paid, pending, failed, underpaid
    raw_status: str | None = None


class BookingService:
    """Service for the booking state machine and its money side effects."""

    def __init__(
        self,
        calculator: RefundCalculator | None = None,
        escrow: EscrowService | None = None,
        gateways: GatewayService | None = None,
    ) -> None:
        self.refund_calculator = calculator or refund_calculator
        self.escrow_service = escrow or escrow_service
        self.gateway_service = gateways or gateway_service

    # ==================== QUERIES ====================

    async def get_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor: Actor | None = None,
        *,
        for_update: bool = False,
    ) -> Booking:
        """Load a booking, optionally locking the row and checking access."""
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        if actor is not None:
            assert_booking_party(actor, booking)
        return booking

    async def list_bookings_for_actor(
        self,
        db: AsyncSession,
        actor: Actor,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """Bookings visible to the actor: all for admins, own trips and hostings otherwise."""
        query = select(Booking)
        if not actor.is_admin:
            query = query.where(
                or_(Booking.guest_id == actor.user_id, Booking.host_id == actor.user_id)
            )
        if status:
            query = query.where(Booking.status == status)

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        result = await db.execute(
            query.order_by(Booking.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def get_status_history(
        self, db: AsyncSession, booking_id: UUID
    ) -> list[BookingStatusHistory]:
        result = await db.execute(
            select(BookingStatusHistory)
            .where(BookingStatusHistory.booking_id == booking_id)
            .order_by(BookingStatusHistory.created_at, BookingStatusHistory.id)
        )
        return list(result.scalars().all())

    async def find_overlapping(
        self,
        db: AsyncSession,
        listing_id: UUID,
        start_date,
        end_date,
        exclude_booking_id: UUID | None = None,
    ) -> list[Booking]:
        """Occupying bookings whose [start, end) range intersects the given one."""
        query = select(Booking).where(
            Booking.listing_id == listing_id,
            Booking.status.in_([s.value for s in OCCUPYING_STATUSES]),
            Booking.start_date < end_date,
            Booking.end_date > start_date,
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ==================== TRANSITIONS ====================

    def _transition(
        self,
        db: AsyncSession,
        booking: Booking,
        target: BookingStatus,
        actor_id: UUID | None,
        actor_role: str,
        note: str | None = None,
    ) -> None:
        assert_booking_transition(booking.status, target)
        db.add(
            BookingStatusHistory(
                booking_id=booking.id,
                from_status=booking.status,
                to_status=target.value,
                actor_id=actor_id,
                actor_role=actor_role,
                note=note,
                created_at=utcnow(),
            )
        )
        logger.info(
            f"Booking {booking.booking_number}: {booking.status} → {target.value} ({actor_role})"
        )
        booking.status = target.value

    async def _emit(
        self,
        name: str,
        booking: Booking,
        actor_id: UUID | None,
        amounts: dict[str, int] | None = None,
        **data,
    ) -> None:
        await notification_service.emit(
            DomainEvent(
                name=name,
                booking_id=booking.id,
                actor_id=actor_id,
                amounts=amounts or {},
                data={"booking_number": booking.booking_number, "status": booking.status, **data},
            )
        )

    # ==================== CREATION ====================

    async def create_booking(self, db: AsyncSession, actor: Actor, data: BookingCreate) -> Booking:
        """Create a reservation.

        Instant-book listings start in pending_payment; others start in
        pending with a host response deadline.

        Raises:
            NotFoundError: Unknown listing
            ListingNotAvailable: Listing is not active
            ValidationError: Dates, stay length or guest count out of bounds
            SlotNoLongerAvailable: Dates overlap an occupying booking
        """
        require_role(actor, ActorRole.GUEST, ActorRole.HOST)

        listing = await db.get(Listing, data.listing_id)
        if listing is None:
            raise NotFoundError("Listing", str(data.listing_id))
        if not listing.is_bookable:
            raise ListingNotAvailable()
        if listing.host_id == actor.user_id:
            raise ValidationError("Hosts cannot book their own listing")

        # Validate dates and guests
        if data.end_date <= data.start_date:
            raise ValidationError("end_date must be after start_date")
        if data.start_date < datetime.now(UTC).date():
            raise ValidationError("start_date cannot be in the past")
        nights = (data.end_date - data.start_date).days
        if nights < listing.min_nights:
            raise ValidationError(f"Minimum stay is {listing.min_nights} nights")
        if listing.max_nights and nights > listing.max_nights:
            raise ValidationError(f"Maximum stay is {listing.max_nights} nights")
        if data.adults + data.children > listing.max_guests:
            raise ValidationError(f"Maximum {listing.max_guests} guests allowed")

        payment_method = PaymentMethod(data.payment_method)
        provider = self.gateway_service.gateway_type_for(listing.currency, payment_method.value)
        if payment_method == PaymentMethod.SLICKPAY and provider != GatewayType.SLICKPAY:
            raise ValidationError(f"SlickPay only settles DZD, not {listing.currency}")

        if await self.find_overlapping(db, listing.id, data.start_date, data.end_date):
            raise SlotNoLongerAvailable()

        pricing = pricing_service.calculate_booking_amounts(
            base_price=listing.base_price,
            nights=nights,
            cleaning_fee=listing.cleaning_fee or 0,
            currency=listing.currency,
        )

        now = utcnow()
        initial_status = (
            BookingStatus.PENDING_PAYMENT if listing.instant_book else BookingStatus.PENDING
        )
        booking = Booking(
            booking_number=await generate_booking_number(db),
            listing_id=listing.id,
            guest_id=actor.user_id,
            host_id=listing.host_id,
            start_date=data.start_date,
            end_date=data.end_date,
            adults=data.adults,
            children=data.children,
            infants=data.infants,
            special_requests=data.special_requests,
            base_price=pricing.base_price,
            nights=pricing.nights,
            subtotal=pricing.subtotal,
            cleaning_fee=pricing.cleaning_fee,
            guest_service_fee=pricing.guest_service_fee,
            host_commission=pricing.host_commission,
            taxes=pricing.taxes,
            total_amount=pricing.total_amount,
            host_payout=pricing.host_payout,
            currency=pricing.currency,
            cancellation_policy=listing.cancellation_policy,
            payment_method=payment_method.value,
            payment_provider=provider.value,
            payment_status=PaymentStatus.PENDING.value,
            status=initial_status.value,
            host_response_deadline=(
                None
                if listing.instant_book
                else now + timedelta(hours=settings.host_response_window_hours)
            ),
            created_at=now,
            updated_at=now,
        )

        db.add(booking)
        try:
            await db.flush()
        except IntegrityError as e:
            if OVERLAP_CONSTRAINT not in str(e.orig):
                raise
            await db.rollback()
            raise SlotNoLongerAvailable()

        # Recheck after insert: a concurrent request may have taken the dates
        if await self.find_overlapping(
            db, listing.id, data.start_date, data.end_date, exclude_booking_id=booking.id
        ):
            logger.warning(
                f"Double booking detected on listing {listing.id} "
                f"{data.start_date}..{data.end_date}; removing {booking.booking_number}"
            )
            await db.delete(booking)
            await db.flush()
            raise SlotNoLongerAvailable()

        db.add(
            BookingStatusHistory(
                booking_id=booking.id,
                from_status=None,
                to_status=initial_status.value,
                actor_id=actor.user_id,
                actor_role=ActorRole.GUEST.value,
                note="Booking created",
                created_at=now,
            )
        )
        await db.flush()

        logger.info(
            f"Booking {booking.booking_number} created for listing {listing.id} "
            f"({initial_status.value}, {booking.total_amount} {booking.currency})"
        )
        await self._emit(
            notification_service.BOOKING_CREATED,
            booking,
            actor.user_id,
            amounts={"total_amount": booking.total_amount},
        )
        return booking

    # ==================== HOST RESPONSE ====================

    async def approve_booking(self, db: AsyncSession, actor: Actor, booking_id: UUID) -> Booking:
        """Host accepts a pending request.

        Gateway-paid bookings move to pending_payment; bank transfer and
        cash bookings move straight to confirmed.
        """
        booking = await self.get_booking(db, booking_id, for_update=True)
        assert_booking_party(actor, booking, ActorRole.HOST)

        now = utcnow()
        if booking.status == BookingStatus.PENDING.value and (
            booking.host_response_deadline and booking.host_response_deadline < now
        ):
            raise ValidationError("The host response deadline has passed")

        target = (
            BookingStatus.CONFIRMED
            if is_manual_method(booking.payment_method)
            else BookingStatus.PENDING_PAYMENT
        )
        self._transition(db, booking, target, actor.user_id, ActorRole.HOST.value, "Approved by host")
        booking.host_responded_at = now
        if target == BookingStatus.CONFIRMED:
            booking.confirmed_at = now
        await db.flush()

        await self._emit(notification_service.BOOKING_APPROVED, booking, actor.user_id)
        return booking

    async def reject_booking(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reason: str | None = None,
    ) -> Booking:
        """Host declines a pending request."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        assert_booking_party(actor, booking, ActorRole.HOST)
        if booking.status != BookingStatus.PENDING.value:
            raise InvalidTransition("booking", booking.status, BookingStatus.CANCELLED_BY_HOST)

        now = utcnow()
        self._transition(
            db,
            booking,
            BookingStatus.CANCELLED_BY_HOST,
            actor.user_id,
            ActorRole.HOST.value,
            reason or "Rejected by host",
        )
        booking.host_responded_at = now
        booking.cancelled_by = actor.user_id
        booking.cancelled_by_role = ActorRole.HOST.value
        booking.cancelled_at = now
        booking.cancellation_reason = "host_rejected"
        booking.cancellation_note = reason
        await db.flush()

        await self._emit(notification_service.BOOKING_REJECTED, booking, actor.user_id, reason=reason)
        return booking

    # ==================== PAYMENT ====================

    async def initiate_payment(
        self, db: AsyncSession, actor: Actor, booking_id: UUID
    ) -> tuple[Booking, PaymentIntent]:
        """Create the provider-side payment for the booking total."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        assert_booking_party(actor, booking, ActorRole.GUEST)

        if booking.payment_status == PaymentStatus.PAID.value:
            raise ValidationError("Booking is already paid")
        if booking.status not in (BookingStatus.PENDING_PAYMENT.value, BookingStatus.CONFIRMED.value):
            raise InvalidTransition("booking", booking.status, BookingStatus.PAID)

        guest = await db.get(User, booking.guest_id)
        payer = PayerInfo(
            first_name=(guest.first_name or "") if guest else "",
            last_name=(guest.last_name or "") if guest else "",
            email=guest.email if guest else "",
            phone=(guest.phone or "") if guest else "",
        )

        intent = await self.gateway_service.create_intent(
            booking.payment_provider,
            amount=booking.total_amount,
            currency=booking.currency,
            booking_ref=str(booking.id),
            payer_info=payer,
            metadata={
                "booking_number": booking.booking_number,
                "description": f"Booking {booking.booking_number}",
            },
        )

        if booking.payment_status == PaymentStatus.FAILED.value:
            assert_payment_transition(booking.payment_status, PaymentStatus.PENDING)
            booking.payment_status = PaymentStatus.PENDING.value
        booking.payment_transaction_id = intent.provider_transaction_id
        await db.flush()

        logger.info(
            f"Payment initiated for booking {booking.booking_number} via "
            f"{booking.payment_provider} ({intent.provider_transaction_id})"
        )
        return booking, intent

    async def _mark_paid(
        self,
        db: AsyncSession,
        booking: Booking,
        provider_ref: str | None,
        actor_id: UUID | None,
        actor_role: str,
        paid_amount: int | None = None,
    ) -> None:
        """Record the capture, walk the booking to paid and open the escrow."""
        assert_payment_transition(booking.payment_status, PaymentStatus.PAID)
        now = utcnow()
        booking.payment_status = PaymentStatus.PAID.value
        booking.paid_amount = booking.total_amount if paid_amount is None else paid_amount
        booking.paid_at = now

        if booking.status == BookingStatus.PENDING_PAYMENT.value:
            self._transition(
                db, booking, BookingStatus.CONFIRMED, actor_id, actor_role, "Payment received"
            )
            booking.confirmed_at = now
        self._transition(db, booking, BookingStatus.PAID, actor_id, actor_role, "Funds held in escrow")
        await db.flush()

        await self.escrow_service.create_escrow(db, booking, provider_ref, actor_id=actor_id)
        await self._emit(
            notification_service.BOOKING_PAID,
            booking,
            actor_id,
            amounts={"paid_amount": booking.paid_amount},
        )

    async def _refund_late_payment(self, db: AsyncSession, booking: Booking, paid_amount: int) -> None:
        """A payment captured after the booking ended up cancelled or expired."""
        logger.warning(
            f"Payment captured for {booking.status} booking {booking.booking_number}; refunding in full"
        )
        booking.payment_status = PaymentStatus.PAID.value
        booking.paid_amount = paid_amount
        booking.paid_at = utcnow()
        await self._refund_through_provider(
            db, booking, paid_amount, PaymentStatus.REFUNDED, reason=f"Booking {booking.status}"
        )

    async def _refund_through_provider(
        self,
        db: AsyncSession,
        booking: Booking,
        amount: int,
        settled_status: PaymentStatus,
        reason: str,
        actor_id: UUID | None = None,
    ) -> bool:
        """Ask the provider to send a refund; only a confirmed one is settled.

        The booking sits in refund_pending until the provider confirms, or
        until an admin records a manual settlement.
        """
        assert_payment_transition(booking.payment_status, PaymentStatus.REFUND_PENDING)
        booking.payment_status = PaymentStatus.REFUND_PENDING.value
        booking.refund_amount = amount
        await db.flush()

        result = await self.gateway_service.process_refund(
            booking.payment_provider,
            booking.payment_transaction_id,
            amount,
            reason=reason,
        )
        if result.success:
            booking.payment_status = settled_status.value
            booking.refunded_at = utcnow()
            await db.flush()
            return True

        logger.warning(
            f"Provider refund of {amount} for {booking.booking_number} needs manual settlement: "
            f"{result.error_message}"
        )
        await audit_service.log_status_change(
            db,
            user_id=actor_id,
            action="booking_refund_pending_manual",
            resource_type="booking",
            resource_id=booking.id,
            old_status=PaymentStatus.PAID.value,
            new_status=PaymentStatus.REFUND_PENDING.value,
            amount=amount,
            reason=result.error_message,
        )
        await db.flush()
        await self._emit(
            notification_service.REFUND_PENDING,
            booking,
            actor_id,
            amounts={"refund_amount": amount},
            provider=booking.payment_provider,
        )
        return False

    async def verify_payment(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor: Actor | None = None,
    ) -> PaymentVerification:
        """Reconcile the booking with its provider (client poll or webhook).

        Idempotent: once the payment is paid, further calls change nothing.
        """
        booking = await self.get_booking(db, booking_id, for_update=True)
        if actor is not None:
            assert_booking_party(actor, booking)

        if booking.payment_status in (
            PaymentStatus.PAID.value,
            PaymentStatus.REFUND_PENDING.value,
            PaymentStatus.REFUNDED.value,
            PaymentStatus.PARTIALLY_REFUNDED.value,
        ):
            return PaymentVerification(booking=booking, outcome="already_paid")
        if is_manual_method(booking.payment_method):
            raise ValidationError("Manual payments are confirmed by the host or an admin")
        if not booking.payment_transaction_id:
            raise ValidationError("No payment has been initiated for this booking")

        status = await self.gateway_service.get_status(
            booking.payment_provider, booking.payment_transaction_id
        )

        if status.is_paid:
            # Providers that report the captured amount are trusted over the invoice
            paid_amount = booking.total_amount if status.amount is None else status.amount
            if booking.status not in (
                BookingStatus.PENDING_PAYMENT.value,
                BookingStatus.CONFIRMED.value,
            ):
                await self._refund_late_payment(db, booking, paid_amount)
                await db.flush()
                return PaymentVerification(booking=booking, outcome="paid", raw_status=status.raw_status)

            if paid_amount < booking.total_amount:
                logger.error(
                    f"Provider captured {paid_amount} for booking {booking.booking_number} "
                    f"totalling {booking.total_amount}; not confirming"
                )
                return PaymentVerification(
                    booking=booking, outcome="underpaid", raw_status=status.raw_status
                )

            await self._mark_paid(
                db,
                booking,
                provider_ref=status.provider_charge_ref or booking.payment_transaction_id,
                actor_id=actor.user_id if actor else None,
                actor_role=actor.role.value if actor else SYSTEM_ROLE,
                paid_amount=paid_amount,
            )
            return PaymentVerification(booking=booking, outcome="paid", raw_status=status.raw_status)

        if status.is_failed:
            if booking.payment_status != PaymentStatus.FAILED.value:
                assert_payment_transition(booking.payment_status, PaymentStatus.FAILED)
                booking.payment_status = PaymentStatus.FAILED.value
                await db.flush()
            logger.info(
                f"Payment failed for booking {booking.booking_number}: {status.raw_status}"
            )
            return PaymentVerification(booking=booking, outcome="failed", raw_status=status.raw_status)

        return PaymentVerification(booking=booking, outcome="pending", raw_status=status.raw_status)

    async def confirm_manual_payment(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reference: str | None = None,
        note: str | None = None,
    ) -> Booking:
        """Host or admin records receipt of a bank transfer or cash payment."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking, ActorRole.HOST, ActorRole.ADMIN)

        if not is_manual_method(booking.payment_method):
            raise ValidationError("Only bank transfer and cash payments are confirmed manually")
        if booking.payment_status == PaymentStatus.PAID.value:
            return booking
        if booking.status not in (BookingStatus.PENDING_PAYMENT.value, BookingStatus.CONFIRMED.value):
            raise InvalidTransition("booking", booking.status, BookingStatus.PAID)

        await self._mark_paid(
            db,
            booking,
            provider_ref=reference or f"manual_{booking.booking_number}",
            actor_id=actor.user_id,
            actor_role=role.value,
        )
        await audit_service.log_status_change(
            db,
            user_id=actor.user_id,
            action="booking_confirm_manual_payment",
            resource_type="booking",
            resource_id=booking.id,
            old_status=PaymentStatus.PENDING.value,
            new_status=PaymentStatus.PAID.value,
            amount=booking.paid_amount,
            reason=note,
        )
        await db.flush()
        return booking

    async def confirm_manual_refund(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reference: str,
        note: str | None = None,
    ) -> Booking:
        """Admin records a refund the provider could not send (bank transfer)."""
        require_role(actor, ActorRole.ADMIN)
        if not reference or not reference.strip():
            raise ValidationError("A transfer reference is required")
        booking = await self.get_booking(db, booking_id, for_update=True)
        if booking.payment_status != PaymentStatus.REFUND_PENDING.value:
            raise InvalidTransition("payment", booking.payment_status, PaymentStatus.REFUNDED)

        full = Decimal(booking.refund_amount) >= settings.full_refund_threshold * booking.total_amount
        settled = PaymentStatus.REFUNDED if full else PaymentStatus.PARTIALLY_REFUNDED
        assert_payment_transition(booking.payment_status, settled)
        booking.payment_status = settled.value
        booking.refunded_at = utcnow()

        await audit_service.log_status_change(
            db,
            user_id=actor.user_id,
            action="booking_confirm_manual_refund",
            resource_type="booking",
            resource_id=booking.id,
            old_status=PaymentStatus.REFUND_PENDING.value,
            new_status=settled.value,
            amount=booking.refund_amount,
            reason=note or reference.strip(),
        )
        await db.flush()
        logger.info(
            f"Manual refund of {booking.refund_amount} recorded for {booking.booking_number} "
            f"({reference.strip()})"
        )
        return booking

    # ==================== CANCELLATION ====================

    def preview_refund(
        self,
        booking: Booking,
        role: ActorRole,
        cancellation_date: datetime | None = None,
    ) -> RefundResult:
        return self.refund_calculator.calculate(
            booking,
            reason=REFUND_REASON_BY_ROLE[role],
            cancellation_date=cancellation_date or utcnow(),
        )

    async def refund_preview(self, db: AsyncSession, actor: Actor, booking_id: UUID) -> RefundResult:
        """What cancelling now would refund, for the acting party."""
        booking = await self.get_booking(db, booking_id)
        role = assert_booking_party(actor, booking)
        return self.preview_refund(booking, role)

    async def cancel_booking(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reason: str | None = None,
        note: str | None = None,
        custom_refund_percent: Decimal | None = None,
    ) -> tuple[Booking, RefundResult]:
        """Cancel a booking and refund a captured payment.

        The refund is capped at the booking total whatever the calculator
        returns. A refund of at least ``full_refund_threshold`` of the total
        counts as a full refund.
        """
        booking = await self.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking)
        target = cancellation_status_for(role.value)
        old_status = booking.status
        assert_booking_transition(booking.status, target)

        if custom_refund_percent is not None and role != ActorRole.ADMIN:
            raise ValidationError("Only an admin can set a custom refund percentage")

        now = utcnow()
        refund_reason = REFUND_REASON_BY_ROLE[role]
        refund = self.refund_calculator.calculate(
            booking,
            reason=refund_reason,
            cancellation_date=now,
            custom_refund_percent=custom_refund_percent,
        )

        captured = booking.payment_status == PaymentStatus.PAID.value
        refund_amount = min(max(refund.refund.total, 0), booking.total_amount) if captured else 0

        self._transition(db, booking, target, actor.user_id, role.value, note or reason)
        booking.cancelled_by = actor.user_id
        booking.cancelled_by_role = role.value
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        booking.cancellation_note = note
        booking.cancellation_fee = booking.total_amount - refund_amount if captured else 0
        booking.refund_breakdown = refund.to_dict()

        full = Decimal(refund_amount) >= settings.full_refund_threshold * booking.total_amount
        settled_status = PaymentStatus.REFUNDED if full else PaymentStatus.PARTIALLY_REFUNDED
        via_provider = booking.payment_provider != GatewayType.MANUAL.value

        if captured:
            if refund_amount > 0 and not via_provider:
                # Bank transfer and cash refunds are handed back by whoever collected them
                booking.payment_status = settled_status.value
                booking.refund_amount = refund_amount
                booking.refunded_at = now

            escrow = await self.escrow_service.get_by_booking(db, booking.id)
            if escrow is not None and escrow.status in (
                EscrowStatus.HELD.value,
                EscrowStatus.FROZEN.value,
            ):
                await self.escrow_service.process_cancellation_refund(
                    db, escrow, booking, refund_reason, now, actor.user_id, refund=refund
                )

        if role == ActorRole.ADMIN:
            await audit_service.log_status_change(
                db,
                user_id=actor.user_id,
                action="booking_cancel_admin",
                resource_type="booking",
                resource_id=booking.id,
                old_status=old_status,
                new_status=booking.status,
                amount=refund_amount,
                reason=note or reason,
            )
        await db.flush()

        # Provider refund last, once every local write has succeeded
        if captured and refund_amount > 0 and via_provider:
            await self._refund_through_provider(
                db,
                booking,
                refund_amount,
                settled_status,
                reason=refund_reason.value,
                actor_id=actor.user_id,
            )

        logger.info(
            f"Booking {booking.booking_number} cancelled by {role.value}: "
            f"refund {refund_amount}, fee {booking.cancellation_fee}"
        )
        await self._emit(
            notification_service.BOOKING_CANCELLED,
            booking,
            actor.user_id,
            amounts={"refund_amount": refund_amount, "cancellation_fee": booking.cancellation_fee},
            cancelled_by=role.value,
        )
        return booking, refund

    # ==================== STAY ====================

    async def check_in(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        notes: str | None = None,
    ) -> Booking:
        """Host records the guest's arrival (paid → active)."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking, ActorRole.HOST, ActorRole.ADMIN)
        self._check_in(db, booking, actor.user_id, role.value, notes)
        await db.flush()
        await self._emit(notification_service.BOOKING_CHECKED_IN, booking, actor.user_id)
        return booking

    def _check_in(
        self,
        db: AsyncSession,
        booking: Booking,
        actor_id: UUID,
        actor_role: str,
        notes: str | None,
    ) -> None:
        if booking.checked_in_at is not None:
            raise ValidationError("Guest is already checked in")
        if booking.status != BookingStatus.PAID.value:
            raise InvalidTransition("booking", booking.status, BookingStatus.ACTIVE)
        if datetime.now(UTC).date() < booking.start_date:
            raise ValidationError(f"Check-in is not possible before {booking.start_date}")

        self._transition(db, booking, BookingStatus.ACTIVE, actor_id, actor_role, notes or "Checked in")
        booking.checked_in_at = utcnow()
        booking.check_in_confirmed_by = actor_id
        booking.check_in_notes = notes

    async def check_out(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        notes: str | None = None,
        damage_report: str | None = None,
    ) -> Booking:
        """Host records departure; performs the check-in first if it was skipped."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking, ActorRole.HOST, ActorRole.ADMIN)

        if booking.checked_in_at is None and booking.status == BookingStatus.PAID.value:
            logger.info(f"Booking {booking.booking_number}: check-in skipped, checking in first")
            self._check_in(db, booking, actor.user_id, role.value, "Automatic check-in at check-out")

        if booking.status != BookingStatus.ACTIVE.value:
            raise InvalidTransition("booking", booking.status, BookingStatus.COMPLETED)
        if booking.checked_out_at is not None:
            raise ValidationError("Guest is already checked out")

        booking.checked_out_at = utcnow()
        booking.check_out_confirmed_by = actor.user_id
        booking.check_out_notes = notes
        booking.damage_report = damage_report
        await db.flush()

        await self._emit(
            notification_service.BOOKING_CHECKED_OUT,
            booking,
            actor.user_id,
            damage_reported=bool(damage_report),
        )
        return booking

    async def confirm_completion(self, db: AsyncSession, actor: Actor, booking_id: UUID) -> Booking:
        """Guest or host confirms the stay went through.

        The booking completes, and the escrow is released, only once both
        sides have confirmed.
        """
        booking = await self.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking, ActorRole.GUEST, ActorRole.HOST)

        if booking.status != BookingStatus.ACTIVE.value:
            raise InvalidTransition("booking", booking.status, BookingStatus.COMPLETED)
        if booking.checked_out_at is None:
            raise ValidationError("Completion can only be confirmed after check-out")

        if role == ActorRole.HOST:
            booking.host_confirmed_completion = True
        else:
            booking.guest_confirmed_completion = True

        if not (booking.host_confirmed_completion and booking.guest_confirmed_completion):
            await db.flush()
            logger.info(
                f"Booking {booking.booking_number}: completion confirmed by {role.value}, "
                f"waiting for the other party"
            )
            return booking

        self._transition(
            db, booking, BookingStatus.COMPLETED, actor.user_id, role.value, "Confirmed by both parties"
        )
        booking.completed_at = utcnow()
        await db.flush()

        escrow = await self.escrow_service.get_by_booking(db, booking.id)
        if escrow is not None and escrow.status == EscrowStatus.HELD.value:
            await self.escrow_service.release_funds(
                db, escrow, ReleaseTrigger.BOOKING_COMPLETED, actor.user_id
            )
        elif escrow is not None:
            logger.info(
                f"Booking {booking.booking_number} completed; escrow is {escrow.status}, not releasing"
            )

        await self._emit(notification_service.BOOKING_COMPLETED, booking, actor.user_id)
        return booking

    # ==================== ADMIN ====================

    async def mark_disputed(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reason: str,
    ) -> Booking:
        """Admin flags a claim on a completed or cancelled booking."""
        require_role(actor, ActorRole.ADMIN)
        booking = await self.get_booking(db, booking_id, for_update=True)
        old_status = booking.status

        self._transition(db, booking, BookingStatus.DISPUTED, actor.user_id, ActorRole.ADMIN.value, reason)
        await db.flush()

        escrow = await self.escrow_service.get_by_booking(db, booking.id)
        if escrow is not None and escrow.status == EscrowStatus.HELD.value:
            await self.escrow_service.freeze_escrow(db, escrow, reason, actor.user_id)

        await audit_service.log_status_change(
            db,
            user_id=actor.user_id,
            action="booking_mark_disputed",
            resource_type="booking",
            resource_id=booking.id,
            old_status=old_status,
            new_status=booking.status,
            reason=reason,
        )
        await db.flush()

        await self._emit(notification_service.BOOKING_DISPUTED, booking, actor.user_id, reason=reason)
        return booking

    async def delete_unpaid_booking(self, db: AsyncSession, actor: Actor, booking_id: UUID) -> None:
        """Hard delete a pending request that never took money."""
        booking = await self.get_booking(db, booking_id, for_update=True)
        assert_booking_party(actor, booking, ActorRole.GUEST, ActorRole.ADMIN)

        if booking.status != BookingStatus.PENDING.value or booking.paid_amount > 0 or (
            booking.payment_status not in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
        ):
            raise ValidationError("Only pending bookings without a payment can be deleted")

        await db.execute(
            delete(BookingStatusHistory).where(BookingStatusHistory.booking_id == booking.id)
        )
        await db.delete(booking)
        await db.flush()
        logger.info(f"Booking {booking.booking_number} deleted by {actor.user_id}")

    # ==================== SWEEPS ====================

    async def expire_overdue(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Expire pending requests whose host response deadline passed."""
        now = now or utcnow()
        result = await db.execute(
            select(Booking).where(
                Booking.status == BookingStatus.PENDING.value,
                Booking.host_response_deadline.is_not(None),
                Booking.host_response_deadline <= now,
            )
        )
        expired = 0
        for booking in result.scalars().all():
            self._transition(
                db, booking, BookingStatus.EXPIRED, None, SYSTEM_ROLE, "Host did not respond in time"
            )
            booking.auto_expired = True
            await db.flush()
            await self._emit(notification_service.BOOKING_EXPIRED, booking, None)
            expired += 1
        return expired

    async def due_for_reminder(self, db: AsyncSession, now: datetime | None = None) -> list[Booking]:
        """Pending requests close to their deadline whose host was not reminded yet."""
        now = now or utcnow()
        result = await db.execute(
            select(Booking).where(
                Booking.status == BookingStatus.PENDING.value,
                Booking.host_reminder_sent.is_(False),
                Booking.host_response_deadline > now,
                Booking.host_response_deadline
                <= now + timedelta(hours=settings.host_response_reminder_hours),
            )
        )
        return list(result.scalars().all())

    async def mark_reminder_sent(self, db: AsyncSession, booking: Booking) -> None:
        booking.host_reminder_sent = True
        await db.flush()
        await self._emit(
            notification_service.HOST_RESPONSE_REMINDER,
            booking,
            None,
            deadline=booking.host_response_deadline.isoformat(),
        )


# Singleton instance
booking_service = BookingService()
