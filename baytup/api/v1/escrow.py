"""Admin escrow override endpoints.

Every action records the acting admin in the escrow history and the
audit log.
"""

from uuid import UUID

from fastapi import APIRouter

from baytup.api.deps import AdminActor, DbSession
from baytup.core.exceptions import NotFoundError
from baytup.domain.escrow_state import ReleaseTrigger
from baytup.models.escrow import Escrow
from baytup.schemas.escrow import (
    DisputeSplit,
    EscrowDetailResponse,
    EscrowFreezeRequest,
    EscrowHistoryResponse,
    EscrowReleaseRequest,
    EscrowResponse,
    EscrowUnfreezeRequest,
)
from baytup.services.audit_service import audit_service
from baytup.services.escrow_service import escrow_service

router = APIRouter()


async def _escrow_for_booking(db, booking_id: UUID) -> Escrow:
    escrow = await escrow_service.get_by_booking(db, booking_id)
    if escrow is None:
        raise NotFoundError("Escrow for booking", str(booking_id))
    return escrow


@router.get("/{booking_id}", response_model=EscrowDetailResponse)
async def get_escrow(booking_id: UUID, actor: AdminActor, db: DbSession) -> EscrowDetailResponse:
    """Get a booking's escrow with its full history."""
    escrow = await _escrow_for_booking(db, booking_id)
    history = await escrow_service.get_history(db, escrow.id)
    return EscrowDetailResponse(
        **EscrowResponse.model_validate(escrow).model_dump(),
        history=[EscrowHistoryResponse.model_validate(h) for h in history],
    )


@router.post("/{escrow_id}/release", response_model=EscrowResponse)
async def release_escrow(
    escrow_id: UUID,
    body: EscrowReleaseRequest,
    actor: AdminActor,
    db: DbSession,
) -> Escrow:
    """Release held or frozen funds to the host (admin override)."""
    escrow = await escrow_service.get_escrow(db, escrow_id)
    old_status = escrow.status
    await escrow_service.release_funds(
        db, escrow, ReleaseTrigger.ADMIN_OVERRIDE, actor.user_id, note=body.note
    )
    await audit_service.log_status_change(
        db,
        user_id=actor.user_id,
        action="escrow_release_manual",
        resource_type="escrow",
        resource_id=escrow.id,
        old_status=old_status,
        new_status=escrow.status,
        amount=escrow.released_amount,
        reason=body.note,
    )
    return escrow


@router.post("/{escrow_id}/freeze", response_model=EscrowResponse)
async def freeze_escrow(
    escrow_id: UUID,
    body: EscrowFreezeRequest,
    actor: AdminActor,
    db: DbSession,
) -> Escrow:
    """Suspend release of held funds; a reason is mandatory."""
    escrow = await escrow_service.get_escrow(db, escrow_id)
    old_status = escrow.status
    await escrow_service.freeze_escrow(db, escrow, body.reason, actor.user_id)
    await audit_service.log_status_change(
        db,
        user_id=actor.user_id,
        action="escrow_freeze",
        resource_type="escrow",
        resource_id=escrow.id,
        old_status=old_status,
        new_status=escrow.status,
        reason=body.reason,
    )
    return escrow


@router.post("/{escrow_id}/unfreeze", response_model=EscrowResponse)
async def unfreeze_escrow(
    escrow_id: UUID,
    body: EscrowUnfreezeRequest,
    actor: AdminActor,
    db: DbSession,
) -> Escrow:
    """Return frozen funds to held."""
    escrow = await escrow_service.get_escrow(db, escrow_id)
    await escrow_service.unfreeze_escrow(db, escrow, actor.user_id, note=body.note)
    await audit_service.log_status_change(
        db,
        user_id=actor.user_id,
        action="escrow_unfreeze",
        resource_type="escrow",
        resource_id=escrow.id,
        old_status="frozen",
        new_status=escrow.status,
        reason=body.note,
    )
    return escrow


@router.post("/{escrow_id}/resolve", response_model=EscrowResponse)
async def resolve_escrow(
    escrow_id: UUID,
    body: DisputeSplit,
    actor: AdminActor,
    db: DbSession,
) -> Escrow:
    """Release the escrow with an explicit host/guest split."""
    escrow = await escrow_service.get_escrow(db, escrow_id)
    old_status = escrow.status
    await escrow_service.resolve_dispute(
        db,
        escrow,
        host_portion=body.host_portion,
        guest_portion=body.guest_portion,
        resolved_by=actor.user_id,
        notes=body.notes,
    )
    await audit_service.log_action(
        db,
        user_id=actor.user_id,
        action="escrow_resolve_dispute",
        resource_type="escrow",
        resource_id=escrow.id,
        old_values={"status": old_status},
        new_values={
            "status": escrow.status,
            "host_portion": body.host_portion,
            "guest_portion": body.guest_portion,
        },
        reason=body.notes,
    )
    return escrow
