"""Escrow ledger service.

Custodies a paid booking's funds until release. Every status change is
written together with an escrow_history row in the same flush, and the
history row is added before the status is mutated.

Breakdown at creation:
- host_amount = booking.host_payout
- platform_amount = guest service fee + host commission
- original_total = booking.total_amount
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from baytup.config import settings
from baytup.core.exceptions import InvalidEscrowState, NotFoundError, ValidationError
from baytup.database import utcnow
from baytup.domain.booking_state import BookingStatus
from baytup.domain.dispute_state import DisputeStatus
from baytup.domain.escrow_state import (
    EscrowAction,
    EscrowStatus,
    ReleaseTrigger,
    assert_escrow_transition,
)
from baytup.models.admin import Dispute
from baytup.models.booking import Booking
from baytup.models.escrow import Escrow, EscrowHistory
from baytup.services.notification_service import DomainEvent, notification_service
from baytup.services.refund_calculator import (
    RefundCalculator,
    RefundReason,
    RefundResult,
    day_start,
    refund_calculator,
)

logger = logging.getLogger(__name__)


def assert_positive_amount(amount: int, field: str = "amount") -> None:
    """Guard: amounts moved by the ledger are never negative."""
    if amount < 0:
        raise ValidationError(f"{field} must not be negative (got {amount})")


class EscrowService:
    """Service for holding, releasing, freezing and splitting escrowed funds."""

    def __init__(self, calculator: RefundCalculator | None = None) -> None:
        self.calculator = calculator or refund_calculator

    # ==================== QUERIES ====================

    async def get_by_booking(self, db: AsyncSession, booking_id: UUID) -> Escrow | None:
        result = await db.execute(select(Escrow).where(Escrow.booking_id == booking_id))
        return result.scalar_one_or_none()

    async def get_escrow(self, db: AsyncSession, escrow_id: UUID) -> Escrow:
        escrow = await db.get(Escrow, escrow_id)
        if escrow is None:
            raise NotFoundError("Escrow", str(escrow_id))
        return escrow

    async def get_history(self, db: AsyncSession, escrow_id: UUID) -> list[EscrowHistory]:
        """History entries for an escrow, oldest first."""
        result = await db.execute(
            select(EscrowHistory)
            .where(EscrowHistory.escrow_id == escrow_id)
            .order_by(EscrowHistory.created_at, EscrowHistory.id)
        )
        return list(result.scalars().all())

    async def has_open_dispute(self, db: AsyncSession, booking_id: UUID) -> bool:
        result = await db.execute(
            select(Dispute.id).where(
                Dispute.booking_id == booking_id,
                Dispute.status == DisputeStatus.OPEN.value,
            )
        )
        return result.first() is not None

    # ==================== HISTORY ====================

    def _record(
        self,
        db: AsyncSession,
        escrow: Escrow,
        action: EscrowAction,
        performed_by: UUID | None,
        note: str | None = None,
        to_status: str | None = None,
        amount: int | None = None,
    ) -> EscrowHistory:
        entry = EscrowHistory(
            escrow_id=escrow.id,
            action=action.value,
            from_status=escrow.status,
            to_status=to_status or escrow.status,
            amount=amount,
            performed_by=performed_by,
            note=note,
            created_at=utcnow(),
        )
        db.add(entry)
        return entry

    # ==================== OPERATIONS ====================

    async def create_escrow(
        self,
        db: AsyncSession,
        booking: Booking,
        provider_ref: str | None,
        actor_id: UUID | None = None,
    ) -> Escrow:
        """Open the escrow for a paid booking.

        Idempotent: returns the existing escrow when one is already open
        for the booking (poll and webhook may both confirm the payment).
        """
        existing = await self.get_by_booking(db, booking.id)
        if existing is not None:
            logger.info(f"Escrow already exists for booking {booking.booking_number}")
            return existing

        platform_amount = booking.guest_service_fee + booking.host_commission
        if booking.host_payout + platform_amount != booking.total_amount:
            raise ValidationError(
                f"Escrow breakdown does not balance for booking {booking.booking_number}: "
                f"{booking.host_payout} + {platform_amount} != {booking.total_amount}"
            )

        escrow = Escrow(
            booking_id=booking.id,
            payer_id=booking.guest_id,
            payee_id=booking.host_id,
            amount=booking.total_amount,
            currency=booking.currency,
            host_amount=booking.host_payout,
            platform_amount=platform_amount,
            original_total=booking.total_amount,
            provider_ref=provider_ref,
            status=EscrowStatus.HELD.value,
            release_scheduled_at=day_start(booking.end_date)
            + timedelta(hours=settings.escrow_auto_release_hours),
        )

        try:
            async with db.begin_nested():
                db.add(escrow)
                await db.flush()
                self._record(db, escrow, EscrowAction.CREATED, actor_id, amount=escrow.amount)
                self._record(
                    db,
                    escrow,
                    EscrowAction.CAPTURED,
                    actor_id,
                    note=f"Captured via {booking.payment_provider} ({provider_ref})",
                    amount=escrow.amount,
                )
                await db.flush()
        except IntegrityError:
            # Lost the race to a concurrent confirmation
            existing = await self.get_by_booking(db, booking.id)
            if existing is None:
                raise
            return existing

        logger.info(
            f"Escrow {escrow.id} holding {escrow.amount} {escrow.currency} "
            f"for booking {booking.booking_number}"
        )
        return escrow

    async def release_funds(
        self,
        db: AsyncSession,
        escrow: Escrow,
        trigger: ReleaseTrigger,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> Escrow:
        """Release the host amount; valid only from held or frozen."""
        assert_escrow_transition(escrow.status, EscrowStatus.RELEASED)

        self._record(
            db,
            escrow,
            EscrowAction.RELEASED,
            actor_id,
            note=note or f"Released ({trigger.value})",
            to_status=EscrowStatus.RELEASED.value,
            amount=escrow.host_amount,
        )
        escrow.status = EscrowStatus.RELEASED.value
        escrow.released_at = utcnow()
        escrow.release_trigger = trigger.value
        escrow.released_amount = escrow.host_amount
        await db.flush()

        logger.info(f"Escrow {escrow.id} released {escrow.host_amount} to host ({trigger.value})")
        await notification_service.emit(
            DomainEvent(
                name=notification_service.ESCROW_RELEASED,
                booking_id=escrow.booking_id,
                escrow_id=escrow.id,
                actor_id=actor_id,
                amounts={"host_amount": escrow.host_amount},
                data={"trigger": trigger.value},
            )
        )
        return escrow

    async def freeze_escrow(
        self,
        db: AsyncSession,
        escrow: Escrow,
        reason: str,
        actor_id: UUID | None,
        dispute: Dispute | None = None,
    ) -> Escrow:
        """Suspend release while a dispute is open; valid only from held."""
        if escrow.status != EscrowStatus.HELD.value:
            raise InvalidEscrowState(escrow.status, EscrowStatus.FROZEN)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to freeze an escrow")

        if dispute is not None:
            self._record(
                db,
                escrow,
                EscrowAction.DISPUTE_OPENED,
                actor_id,
                note=f"Dispute {dispute.id}: {dispute.reason}",
            )
            escrow.dispute_id = dispute.id
        self._record(
            db, escrow, EscrowAction.FROZEN, actor_id, note=reason, to_status=EscrowStatus.FROZEN.value
        )
        escrow.status = EscrowStatus.FROZEN.value
        escrow.frozen_at = utcnow()
        escrow.freeze_reason = reason
        await db.flush()

        logger.info(f"Escrow {escrow.id} frozen: {reason}")
        await notification_service.emit(
            DomainEvent(
                name=notification_service.ESCROW_FROZEN,
                booking_id=escrow.booking_id,
                escrow_id=escrow.id,
                actor_id=actor_id,
                amounts={"amount": escrow.amount},
                data={"reason": reason},
            )
        )
        return escrow

    async def unfreeze_escrow(
        self,
        db: AsyncSession,
        escrow: Escrow,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> Escrow:
        """Return a frozen escrow to held (dispute dismissed)."""
        if escrow.status != EscrowStatus.FROZEN.value:
            raise InvalidEscrowState(escrow.status, EscrowStatus.HELD)

        self._record(
            db, escrow, EscrowAction.UNFROZEN, actor_id, note=note, to_status=EscrowStatus.HELD.value
        )
        escrow.status = EscrowStatus.HELD.value
        escrow.frozen_at = None
        escrow.freeze_reason = None
        await db.flush()
        return escrow

    async def process_cancellation_refund(
        self,
        db: AsyncSession,
        escrow: Escrow,
        booking: Booking,
        reason: RefundReason,
        cancellation_date: datetime,
        actor_id: UUID | None,
        refund: RefundResult | None = None,
    ) -> Escrow:
        """Split the held funds between guest refund and host share.

        The guest refund is capped at the held amount and the host share at
        host_amount, whatever the calculator returned.
        """
        if escrow.status not in (EscrowStatus.HELD.value, EscrowStatus.FROZEN.value):
            raise InvalidEscrowState(escrow.status, EscrowStatus.REFUNDED)

        if refund is None:
            refund = self.calculator.calculate(
                booking, reason=reason, cancellation_date=cancellation_date
            )

        guest_refund = min(max(refund.distribution.guest_refund, 0), escrow.amount)
        host_receives = min(
            max(refund.distribution.host_receives, 0),
            escrow.host_amount,
            escrow.amount - guest_refund,
        )

        if host_receives == 0:
            target, action = EscrowStatus.REFUNDED, EscrowAction.REFUNDED
        elif guest_refund == 0:
            target, action = EscrowStatus.RELEASED, EscrowAction.RELEASED
        else:
            target, action = EscrowStatus.PARTIALLY_REFUNDED, EscrowAction.PARTIAL_REFUND
        assert_escrow_transition(escrow.status, target)

        self._record(
            db,
            escrow,
            action,
            actor_id,
            note=f"Cancellation ({reason.value}): guest {guest_refund}, host {host_receives}",
            to_status=target.value,
            amount=guest_refund,
        )
        now = utcnow()
        escrow.status = target.value
        escrow.refunded_amount = guest_refund
        escrow.refund_breakdown = refund.to_dict()
        if guest_refund:
            escrow.refunded_at = now
        if host_receives:
            escrow.released_amount = host_receives
            escrow.released_at = now
            escrow.release_trigger = ReleaseTrigger.CANCELLATION.value
        await db.flush()

        logger.info(
            f"Escrow {escrow.id} cancellation refund: guest {guest_refund}, "
            f"host {host_receives}, status {target.value}"
        )
        await notification_service.emit(
            DomainEvent(
                name=notification_service.ESCROW_REFUNDED,
                booking_id=escrow.booking_id,
                escrow_id=escrow.id,
                actor_id=actor_id,
                amounts={"guest_refund": guest_refund, "host_receives": host_receives},
            )
        )
        return escrow

    async def resolve_dispute(
        self,
        db: AsyncSession,
        escrow: Escrow,
        host_portion: int,
        guest_portion: int,
        resolved_by: UUID,
        notes: str | None = None,
    ) -> Escrow:
        """Release the escrow with an admin-chosen host/guest split.

        Raises:
            ValidationError: If the split exceeds the held host amount
        """
        if escrow.status not in (EscrowStatus.HELD.value, EscrowStatus.FROZEN.value):
            raise InvalidEscrowState(escrow.status, EscrowStatus.RELEASED)
        assert_positive_amount(host_portion, "host_portion")
        assert_positive_amount(guest_portion, "guest_portion")
        if host_portion + guest_portion > escrow.host_amount:
            raise ValidationError(
                f"Dispute split {host_portion} + {guest_portion} exceeds "
                f"held host amount {escrow.host_amount}"
            )

        self._record(
            db,
            escrow,
            EscrowAction.DISPUTE_RESOLVED,
            resolved_by,
            note=notes or f"Split: host {host_portion}, guest {guest_portion}",
            to_status=EscrowStatus.RELEASED.value,
            amount=host_portion,
        )
        now = utcnow()
        escrow.status = EscrowStatus.RELEASED.value
        escrow.released_at = now
        escrow.release_trigger = ReleaseTrigger.DISPUTE_RESOLUTION.value
        escrow.released_amount = host_portion
        escrow.refunded_amount = guest_portion
        if guest_portion:
            escrow.refunded_at = now
        escrow.resolution_host_portion = host_portion
        escrow.resolution_guest_portion = guest_portion
        escrow.resolved_by = resolved_by
        escrow.resolution_notes = notes
        escrow.resolved_at = now
        await db.flush()

        logger.info(
            f"Escrow {escrow.id} dispute resolved by {resolved_by}: "
            f"host {host_portion}, guest {guest_portion}"
        )
        await notification_service.emit(
            DomainEvent(
                name=notification_service.ESCROW_RELEASED,
                booking_id=escrow.booking_id,
                escrow_id=escrow.id,
                actor_id=resolved_by,
                amounts={"host_portion": host_portion, "guest_portion": guest_portion},
                data={"trigger": ReleaseTrigger.DISPUTE_RESOLUTION.value},
            )
        )
        return escrow

    # ==================== SCHEDULED RELEASE ====================

    async def find_ready_for_release(self, db: AsyncSession, now: datetime) -> list[Escrow]:
        """Held escrows past their release date whose booking is completed."""
        result = await db.execute(
            select(Escrow)
            .join(Booking, Booking.id == Escrow.booking_id)
            .where(
                Escrow.status == EscrowStatus.HELD.value,
                Escrow.release_scheduled_at <= now,
                Booking.status == BookingStatus.COMPLETED.value,
            )
            .order_by(Escrow.release_scheduled_at)
        )
        return list(result.scalars().all())

    async def auto_release_due(self, db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
        """Release due escrows, freezing those with an open dispute instead."""
        now = now or utcnow()
        counts = {"released": 0, "frozen": 0}

        for escrow in await self.find_ready_for_release(db, now):
            if await self.has_open_dispute(db, escrow.booking_id):
                await self.freeze_escrow(
                    db, escrow, reason="Auto-release blocked by open dispute", actor_id=None
                )
                counts["frozen"] += 1
            else:
                await self.release_funds(db, escrow, ReleaseTrigger.AUTO_RELEASE, actor_id=None)
                counts["released"] += 1

        return counts


# Singleton instance
escrow_service = EscrowService()
