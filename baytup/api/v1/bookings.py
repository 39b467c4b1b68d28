"""Booking endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from baytup.api.deps import AdminActor, CurrentActor, DbSession
from baytup.core.exceptions import PaymentDeclined
from baytup.core.middleware import booking_limiter
from baytup.domain.cancellation_policy import get_policy_description
from baytup.models.booking import Booking
from baytup.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingListResponse,
    BookingRejectRequest,
    BookingResponse,
    BookingStatusHistoryResponse,
    CheckInRequest,
    CheckOutRequest,
    ManualPaymentConfirm,
    ManualRefundConfirm,
    MarkDisputedRequest,
    PaymentIntentResponse,
    PaymentVerificationResponse,
    RefundPreviewResponse,
)
from baytup.services.booking_service import booking_service

router = APIRouter()


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_limiter)],
)
async def create_booking(
    booking_data: BookingCreate,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Create a new booking."""
    return await booking_service.create_booking(db, actor, booking_data)


@router.get("/", response_model=BookingListResponse)
async def get_my_bookings(
    actor: CurrentActor,
    db: DbSession,
    status_filter: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> BookingListResponse:
    """Get bookings where the actor is guest or host (all bookings for admins)."""
    bookings, total = await booking_service.list_bookings_for_actor(
        db, actor, status=status_filter, page=page, page_size=page_size
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: UUID, actor: CurrentActor, db: DbSession) -> Booking:
    """Get a booking the actor is party to."""
    return await booking_service.get_booking(db, booking_id, actor)


@router.get("/{booking_id}/history", response_model=list[BookingStatusHistoryResponse])
async def get_booking_history(booking_id: UUID, actor: CurrentActor, db: DbSession) -> list:
    """Status transitions of a booking, oldest first."""
    await booking_service.get_booking(db, booking_id, actor)
    return await booking_service.get_status_history(db, booking_id)


# ============ HOST RESPONSE ============


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(booking_id: UUID, actor: CurrentActor, db: DbSession) -> Booking:
    """Approve a pending booking request (host only)."""
    return await booking_service.approve_booking(db, actor, booking_id)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    body: BookingRejectRequest,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Decline a pending booking request (host only)."""
    return await booking_service.reject_booking(db, actor, booking_id, reason=body.reason)


# ============ PAYMENT ============


@router.post("/{booking_id}/pay", response_model=PaymentIntentResponse)
async def pay_booking(booking_id: UUID, actor: CurrentActor, db: DbSession) -> PaymentIntentResponse:
    """Create the provider payment for the booking (guest only)."""
    booking, intent = await booking_service.initiate_payment(db, actor, booking_id)
    return PaymentIntentResponse(
        booking_id=booking.id,
        provider=booking.payment_provider,
        provider_transaction_id=intent.provider_transaction_id,
        client_payload=intent.client_payload,
    )


@router.post("/{booking_id}/verify-payment", response_model=PaymentVerificationResponse)
async def verify_payment(
    booking_id: UUID,
    actor: CurrentActor,
    db: DbSession,
) -> PaymentVerificationResponse:
    """Poll the provider and confirm the booking once paid."""
    verification = await booking_service.verify_payment(db, booking_id, actor)
    if verification.outcome == "failed":
        # Keep the failed payment status, then report the decline
        await db.commit()
        raise PaymentDeclined(f"Payment was declined ({verification.raw_status})")
    if verification.outcome == "underpaid":
        raise PaymentDeclined("Captured amount is below the booking total")

    booking = verification.booking
    return PaymentVerificationResponse(
        booking_id=booking.id,
        status=booking.status,
        payment_status=booking.payment_status,
        outcome=verification.outcome,
    )


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse)
async def confirm_manual_payment(
    booking_id: UUID,
    body: ManualPaymentConfirm,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Record receipt of a bank transfer or cash payment (host or admin)."""
    return await booking_service.confirm_manual_payment(
        db, actor, booking_id, reference=body.reference, note=body.note
    )


@router.post("/{booking_id}/confirm-refund", response_model=BookingResponse)
async def confirm_manual_refund(
    booking_id: UUID,
    body: ManualRefundConfirm,
    actor: AdminActor,
    db: DbSession,
) -> Booking:
    """Record a refund the payment provider could not send (admin only)."""
    return await booking_service.confirm_manual_refund(
        db, actor, booking_id, reference=body.reference, note=body.note
    )


# ============ CANCELLATION ============


@router.post("/{booking_id}/refund-preview", response_model=RefundPreviewResponse)
async def refund_preview(booking_id: UUID, actor: CurrentActor, db: DbSession) -> RefundPreviewResponse:
    """Show what cancelling now would refund."""
    result = await booking_service.refund_preview(db, actor, booking_id)
    booking = await booking_service.get_booking(db, booking_id)
    refundable, not_refundable_reason = booking_service.refund_calculator.can_refund(booking)
    return RefundPreviewResponse(
        booking_id=booking_id,
        policy=result.policy,
        policy_description=get_policy_description(result.policy),
        refundable=refundable,
        not_refundable_reason=not_refundable_reason,
        refund_total=result.refund.total,
        subtotal_percent=result.refund.subtotal_percent,
        guest_refund=result.distribution.guest_refund,
        host_receives=result.distribution.host_receives,
        platform_keeps=result.distribution.platform_keeps,
        is_in_grace_period=result.cancellation.is_in_grace_period,
        summary=result.summary,
    )


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    body: BookingCancelRequest,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Cancel a booking; captured payments are refunded per the cancellation policy."""
    booking, _ = await booking_service.cancel_booking(
        db,
        actor,
        booking_id,
        reason=body.reason,
        note=body.note,
        custom_refund_percent=body.custom_refund_percent,
    )
    return booking


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(booking_id: UUID, actor: CurrentActor, db: DbSession) -> None:
    """Delete a pending booking that never took a payment."""
    await booking_service.delete_unpaid_booking(db, actor, booking_id)


# ============ STAY ============


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(
    booking_id: UUID,
    body: CheckInRequest,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Record guest arrival (host only)."""
    return await booking_service.check_in(db, actor, booking_id, notes=body.notes)


@router.post("/{booking_id}/check-out", response_model=BookingResponse)
async def check_out(
    booking_id: UUID,
    body: CheckOutRequest,
    actor: CurrentActor,
    db: DbSession,
) -> Booking:
    """Record guest departure (host only)."""
    return await booking_service.check_out(
        db, actor, booking_id, notes=body.notes, damage_report=body.damage_report
    )


@router.post("/{booking_id}/confirm-completion", response_model=BookingResponse)
async def confirm_completion(booking_id: UUID, actor: CurrentActor, db: DbSession) -> Booking:
    """Confirm the stay is complete; completes once guest and host both confirmed."""
    return await booking_service.confirm_completion(db, actor, booking_id)


# ============ ADMIN ============


@router.post("/{booking_id}/dispute", response_model=BookingResponse)
async def mark_disputed(
    booking_id: UUID,
    body: MarkDisputedRequest,
    actor: AdminActor,
    db: DbSession,
) -> Booking:
    """Flag a finished booking as disputed (admin only)."""
    return await booking_service.mark_disputed(db, actor, booking_id, body.reason)
