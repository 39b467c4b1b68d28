"""Dispute endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from baytup.api.deps import AdminActor, CurrentActor, DbSession
from baytup.models.admin import Dispute
from baytup.schemas.escrow import (
    DisputeCreate,
    DisputeDismissRequest,
    DisputeResponse,
    DisputeSplit,
)
from baytup.services.dispute_service import dispute_service

router = APIRouter()


@router.post("/", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(body: DisputeCreate, actor: CurrentActor, db: DbSession) -> Dispute:
    """Open a dispute on a paid booking; freezes its escrow."""
    return await dispute_service.open_dispute(
        db, actor, body.booking_id, body.reason.value, body.description
    )


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: UUID,
    body: DisputeSplit,
    actor: AdminActor,
    db: DbSession,
) -> Dispute:
    """Split the held host amount between host and guest (admin only)."""
    dispute, _ = await dispute_service.resolve_dispute(
        db,
        actor,
        dispute_id,
        host_portion=body.host_portion,
        guest_portion=body.guest_portion,
        notes=body.notes,
    )
    return dispute


@router.post("/{dispute_id}/dismiss", response_model=DisputeResponse)
async def dismiss_dispute(
    dispute_id: UUID,
    body: DisputeDismissRequest,
    actor: AdminActor,
    db: DbSession,
) -> Dispute:
    """Dismiss the claim and return the escrow to held (admin only)."""
    return await dispute_service.dismiss_dispute(db, actor, dispute_id, notes=body.notes)
