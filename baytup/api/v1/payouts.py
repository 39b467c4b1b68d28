"""Payout endpoints for hosts, and the admin payout lifecycle."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from baytup.api.deps import AdminActor, CurrentActor, DbSession, HostActor
from baytup.core.middleware import payout_limiter
from baytup.models.payout import Payout
from baytup.schemas.payment import (
    HostBalanceResponse,
    PayoutCompleteRequest,
    PayoutListResponse,
    PayoutProcessRequest,
    PayoutRejectRequest,
    PayoutRequest,
    PayoutResponse,
)
from baytup.services.payout_service import payout_service

router = APIRouter()


@router.get("/balance", response_model=HostBalanceResponse)
async def get_balance(
    actor: HostActor,
    db: DbSession,
    currency: str = Query(default="DZD", min_length=3, max_length=3),
) -> HostBalanceResponse:
    """Get the host's withdrawable balance."""
    currency = currency.upper()
    balance = await payout_service.available_balance(db, actor.user_id, currency)
    return HostBalanceResponse(
        host_id=balance.host_id,
        currency=balance.currency,
        total_earned=balance.total_earned,
        reserved=balance.reserved,
        available=balance.available,
        minimum_payout=payout_service.minimum_for(currency),
    )


@router.post(
    "/",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(payout_limiter)],
)
async def request_payout(body: PayoutRequest, actor: HostActor, db: DbSession) -> Payout:
    """Request a withdrawal against the available balance."""
    return await payout_service.request_payout(db, actor, body)


@router.get("/", response_model=PayoutListResponse)
async def get_payouts(
    actor: CurrentActor,
    db: DbSession,
    status_filter: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> PayoutListResponse:
    """Get the host's payout history (all payouts for admins)."""
    payouts, total = await payout_service.list_payouts(
        db, actor, status=status_filter, page=page, page_size=page_size
    )
    return PayoutListResponse(
        payouts=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: UUID, actor: CurrentActor, db: DbSession) -> Payout:
    """Get a specific payout."""
    return await payout_service.get_payout(db, payout_id, actor)


@router.post("/{payout_id}/cancel", response_model=PayoutResponse)
async def cancel_payout(payout_id: UUID, actor: HostActor, db: DbSession) -> Payout:
    """Withdraw a pending payout request."""
    return await payout_service.cancel_payout(db, actor, payout_id)


# ============ ADMIN PAYOUT LIFECYCLE ============


@router.post("/{payout_id}/process", response_model=PayoutResponse)
async def process_payout(
    payout_id: UUID,
    body: PayoutProcessRequest,
    actor: AdminActor,
    db: DbSession,
) -> Payout:
    """Start the bank transfer (admin only)."""
    return await payout_service.start_processing(db, actor, payout_id, body.admin_notes)


@router.post("/{payout_id}/complete", response_model=PayoutResponse)
async def complete_payout(
    payout_id: UUID,
    body: PayoutCompleteRequest,
    actor: AdminActor,
    db: DbSession,
) -> Payout:
    """Record the transfer as done (admin only)."""
    return await payout_service.complete_payout(
        db, actor, payout_id, body.transaction_id, body.admin_notes
    )


@router.post("/{payout_id}/reject", response_model=PayoutResponse)
async def reject_payout(
    payout_id: UUID,
    body: PayoutRejectRequest,
    actor: AdminActor,
    db: DbSession,
) -> Payout:
    """Refuse a pending request (admin only)."""
    return await payout_service.reject_payout(db, actor, payout_id, body.reason)
