"""Dispute service.

A dispute freezes the booking's escrow until an admin either splits the
held host amount between the parties or dismisses the claim.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from baytup.core.exceptions import NotFoundError, ValidationError
from baytup.core.permissions import Actor, assert_booking_party, require_role
from baytup.database import utcnow
from baytup.domain.booking_state import ActorRole, BookingStatus
from baytup.domain.dispute_state import DisputeReason, DisputeStatus, assert_dispute_transition
from baytup.domain.escrow_state import EscrowStatus
from baytup.models.admin import Dispute
from baytup.models.escrow import Escrow
from baytup.services.audit_service import audit_service
from baytup.services.booking_service import booking_service
from baytup.services.escrow_service import escrow_service

logger = logging.getLogger(__name__)

# Bookings whose funds are (or were) in escrow
DISPUTABLE_BOOKING_STATUSES = {
    BookingStatus.PAID.value,
    BookingStatus.ACTIVE.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.DISPUTED.value,
}


class DisputeService:
    """Service for dispute lifecycle."""

    async def open_dispute(
        self,
        db: AsyncSession,
        actor: Actor,
        booking_id: UUID,
        reason: str,
        description: str | None = None,
    ) -> Dispute:
        """Open a dispute and freeze the held escrow."""
        booking = await booking_service.get_booking(db, booking_id, for_update=True)
        role = assert_booking_party(actor, booking, ActorRole.GUEST, ActorRole.HOST)

        if booking.status not in DISPUTABLE_BOOKING_STATUSES:
            raise ValidationError(f"Cannot open a dispute on a {booking.status} booking")
        existing = await db.execute(
            select(Dispute.id).where(
                Dispute.booking_id == booking.id,
                Dispute.status == DisputeStatus.OPEN.value,
            )
        )
        if existing.first() is not None:
            raise ValidationError("A dispute is already open for this booking")

        dispute = Dispute(
            booking_id=booking.id,
            raised_by=actor.user_id,
            raised_by_role=role.value,
            reason=DisputeReason(reason).value,
            description=description,
            status=DisputeStatus.OPEN.value,
        )
        db.add(dispute)
        await db.flush()

        escrow = await escrow_service.get_by_booking(db, booking.id)
        if escrow is not None and escrow.status == EscrowStatus.HELD.value:
            await escrow_service.freeze_escrow(
                db,
                escrow,
                reason=f"Dispute raised by {role.value}: {dispute.reason}",
                actor_id=actor.user_id,
                dispute=dispute,
            )

        logger.info(f"Dispute {dispute.id} opened on booking {booking.booking_number} by {role.value}")
        return dispute

    async def resolve_dispute(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: UUID,
        host_portion: int,
        guest_portion: int,
        notes: str | None = None,
    ) -> tuple[Dispute, Escrow]:
        """Admin splits the held host amount and closes the dispute."""
        require_role(actor, ActorRole.ADMIN)
        dispute = await self._get_dispute(db, dispute_id)
        assert_dispute_transition(dispute.status, DisputeStatus.RESOLVED)

        escrow = await self._get_escrow(db, dispute.booking_id)
        old_status = escrow.status
        await escrow_service.resolve_dispute(
            db, escrow, host_portion, guest_portion, resolved_by=actor.user_id, notes=notes
        )

        dispute.status = DisputeStatus.RESOLVED.value
        dispute.host_portion = host_portion
        dispute.guest_portion = guest_portion
        dispute.resolution_notes = notes
        dispute.resolved_by = actor.user_id
        dispute.resolved_at = utcnow()

        await audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="escrow_resolve_dispute",
            resource_type="escrow",
            resource_id=escrow.id,
            old_values={"status": old_status},
            new_values={
                "status": escrow.status,
                "host_portion": host_portion,
                "guest_portion": guest_portion,
            },
            reason=notes,
        )
        await db.flush()
        return dispute, escrow

    async def dismiss_dispute(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: UUID,
        notes: str | None = None,
    ) -> Dispute:
        """Admin rejects the claim; a frozen escrow goes back to held."""
        require_role(actor, ActorRole.ADMIN)
        dispute = await self._get_dispute(db, dispute_id)
        assert_dispute_transition(dispute.status, DisputeStatus.DISMISSED)

        escrow = await escrow_service.get_by_booking(db, dispute.booking_id)
        if escrow is not None and escrow.status == EscrowStatus.FROZEN.value:
            await escrow_service.unfreeze_escrow(
                db, escrow, actor.user_id, note=notes or "Dispute dismissed"
            )
            await audit_service.log_status_change(
                db,
                user_id=actor.user_id,
                action="escrow_unfreeze",
                resource_type="escrow",
                resource_id=escrow.id,
                old_status=EscrowStatus.FROZEN.value,
                new_status=escrow.status,
                reason=notes,
            )

        dispute.status = DisputeStatus.DISMISSED.value
        dispute.resolution_notes = notes
        dispute.resolved_by = actor.user_id
        dispute.resolved_at = utcnow()
        await db.flush()
        return dispute

    async def _get_dispute(self, db: AsyncSession, dispute_id: UUID) -> Dispute:
        """Get dispute by ID or raise NotFoundError."""
        dispute = await db.get(Dispute, dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def _get_escrow(self, db: AsyncSession, booking_id: UUID) -> Escrow:
        escrow = await escrow_service.get_by_booking(db, booking_id)
        if escrow is None:
            raise NotFoundError("Escrow for booking", str(booking_id))
        return escrow


# Singleton instance
dispute_service = DisputeService()
