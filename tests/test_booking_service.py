"""Tests for the booking lifecycle service.

Covers creation and double-booking, host response, payment through a
provider and by hand, cancellation with refunds, the stay itself and
the scheduled sweeps.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from baytup.core.exceptions import (
    AuthorizationError,
    InvalidTransition,
    ListingNotAvailable,
    NotFoundError,
    SlotNoLongerAvailable,
    ValidationError,
)
from baytup.domain.booking_state import BookingStatus
from baytup.domain.escrow_state import EscrowStatus
from baytup.domain.payment_state import PaymentMethod
from baytup.models.admin import AuditLog
from baytup.models.escrow import Escrow
from baytup.schemas.booking import BookingCreate
from baytup.services.booking_service import BookingService, booking_service
from baytup.services.escrow_service import escrow_service

from .helpers import (
    actor_for,
    create_listing,
    create_paid_booking,
    create_user,
    inflated_refund,
    today,
)


async def book(
    db,
    guest,
    listing,
    start=None,
    nights: int = 3,
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
):
    start = start or today() + timedelta(days=30)
    data = BookingCreate(
        listing_id=listing.id,
        start_date=start,
        end_date=start + timedelta(days=nights),
        adults=2,
        payment_method=method,
    )
    return await booking_service.create_booking(db, actor_for(guest), data)


async def escrow_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(Escrow))


async def statuses_in_history(db, booking) -> list[str]:
    return [entry.to_status for entry in await booking_service.get_status_history(db, booking.id)]


@pytest.fixture
async def request_listing(db, host):
    """A listing that needs the host's approval."""
    return await create_listing(db, host, instant_book=False)


class TestCreateBooking:
    async def test_instant_book_waits_for_payment(self, db, guest, listing):
        booking = await book(db, guest, listing)

        assert booking.status == BookingStatus.PENDING_PAYMENT.value
        assert booking.host_id == listing.host_id
        assert booking.nights == 3
        assert booking.total_amount == 918_000
        assert booking.host_payout == 824_500
        assert booking.payment_provider == "manual"
        assert booking.host_response_deadline is None
        assert booking.booking_number.startswith("BTP-")
        assert await statuses_in_history(db, booking) == ["pending_payment"]

    async def test_request_gets_host_deadline(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)

        assert booking.status == BookingStatus.PENDING.value
        window = booking.host_response_deadline - booking.created_at
        assert window == timedelta(hours=24)

    async def test_card_in_dinars_goes_through_slickpay(self, db, guest, listing):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        assert booking.payment_provider == "slickpay"

    async def test_overlapping_dates_are_refused(self, db, guest, listing):
        start = today() + timedelta(days=10)
        await book(db, guest, listing, start=start, nights=3)
        other_guest = await create_user(db, "guest")

        with pytest.raises(SlotNoLongerAvailable):
            await book(db, other_guest, listing, start=start + timedelta(days=2), nights=3)

    async def test_back_to_back_stays_are_allowed(self, db, guest, listing):
        start = today() + timedelta(days=10)
        first = await book(db, guest, listing, start=start, nights=3)
        second = await book(db, guest, listing, start=first.end_date, nights=2)
        assert second.start_date == first.end_date

    async def test_cancelled_booking_frees_the_dates(self, db, guest, listing):
        start = today() + timedelta(days=10)
        first = await book(db, guest, listing, start=start)
        await booking_service.cancel_booking(db, actor_for(guest), first.id, reason="change_of_plans")

        again = await book(db, guest, listing, start=start)
        assert again.status == BookingStatus.PENDING_PAYMENT.value

    async def test_start_in_the_past(self, db, guest, listing):
        with pytest.raises(ValidationError):
            await book(db, guest, listing, start=today() - timedelta(days=1))

    async def test_host_cannot_book_own_listing(self, db, host, listing):
        with pytest.raises(ValidationError):
            await book(db, host, listing)

    async def test_admin_cannot_book(self, db, admin, listing):
        with pytest.raises(AuthorizationError):
            await book(db, admin, listing)

    async def test_too_many_guests(self, db, guest, host):
        small = await create_listing(db, host, max_guests=1)
        with pytest.raises(ValidationError):
            await book(db, guest, small)

    async def test_inactive_listing(self, db, guest, host):
        inactive = await create_listing(db, host, status="inactive")
        with pytest.raises(ListingNotAvailable):
            await book(db, guest, inactive)


class TestHostResponse:
    async def test_approve_manual_payment_confirms(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing)

        booking = await booking_service.approve_booking(db, actor_for(host), booking.id)

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.confirmed_at is not None
        assert booking.host_responded_at is not None

    async def test_approve_card_payment_waits_for_payment(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing, method=PaymentMethod.CARD)
        booking = await booking_service.approve_booking(db, actor_for(host), booking.id)
        assert booking.status == BookingStatus.PENDING_PAYMENT.value

    async def test_guest_cannot_approve(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)
        with pytest.raises(AuthorizationError):
            await booking_service.approve_booking(db, actor_for(guest), booking.id)

    async def test_reject(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing)

        booking = await booking_service.reject_booking(db, actor_for(host), booking.id, "Renovation")

        assert booking.status == BookingStatus.CANCELLED_BY_HOST.value
        assert booking.cancellation_reason == "host_rejected"
        assert booking.cancellation_note == "Renovation"

    async def test_reject_after_approval(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing)
        await booking_service.approve_booking(db, actor_for(host), booking.id)
        with pytest.raises(InvalidTransition):
            await booking_service.reject_booking(db, actor_for(host), booking.id)

    async def test_approve_after_deadline(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing)
        booking.host_response_deadline = booking.created_at - timedelta(minutes=1)
        await db.flush()

        with pytest.raises(ValidationError):
            await booking_service.approve_booking(db, actor_for(host), booking.id)


class TestProviderPayment:
    async def test_poll_until_paid(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)

        assert fake_gateway.intents[0]["amount"] == booking.total_amount
        assert booking.payment_transaction_id == intent.provider_transaction_id

        pending = await booking_service.verify_payment(db, booking.id, actor_for(guest))
        assert pending.outcome == "pending"
        assert await escrow_count(db) == 0

        fake_gateway.mark_paid(intent.provider_transaction_id)
        paid = await booking_service.verify_payment(db, booking.id, actor_for(guest))

        assert paid.outcome == "paid"
        assert paid.booking.status == BookingStatus.PAID.value
        assert paid.booking.payment_status == "paid"
        assert paid.booking.paid_amount == booking.total_amount
        assert sorted(await statuses_in_history(db, booking)) == ["confirmed", "paid", "pending_payment"]

        escrow = await escrow_service.get_by_booking(db, booking.id)
        assert escrow.status == EscrowStatus.HELD.value
        assert escrow.provider_ref == f"ch_{intent.provider_transaction_id}"

    async def test_confirmation_is_idempotent(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id)

        first = await booking_service.verify_payment(db, booking.id)
        paid_at = first.booking.paid_at
        second = await booking_service.verify_payment(db, booking.id)

        assert second.outcome == "already_paid"
        assert second.booking.paid_at == paid_at
        assert second.booking.paid_amount == booking.total_amount
        assert await escrow_count(db) == 1

    async def test_failed_payment_can_be_retried(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_failed(intent.provider_transaction_id)

        failed = await booking_service.verify_payment(db, booking.id)
        assert failed.outcome == "failed"
        assert failed.booking.payment_status == "failed"
        assert failed.booking.status == BookingStatus.PENDING_PAYMENT.value

        booking, _ = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        assert booking.payment_status == "pending"

    async def test_late_capture_is_refunded(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        await booking_service.cancel_booking(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id)

        result = await booking_service.verify_payment(db, booking.id)

        assert result.booking.status == BookingStatus.CANCELLED_BY_GUEST.value
        assert result.booking.payment_status == "refunded"
        assert result.booking.refund_amount == booking.total_amount
        assert fake_gateway.refunds == [
            (intent.provider_transaction_id, booking.total_amount, "Booking cancelled_by_guest")
        ]
        assert await escrow_count(db) == 0

    async def test_short_capture_is_not_confirmed(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id, amount=booking.total_amount - 100)

        result = await booking_service.verify_payment(db, booking.id)

        assert result.outcome == "underpaid"
        assert result.booking.status == BookingStatus.PENDING_PAYMENT.value
        assert result.booking.payment_status == "pending"
        assert result.booking.paid_amount == 0
        assert await escrow_count(db) == 0

    async def test_reported_capture_is_recorded(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id, amount=booking.total_amount)

        result = await booking_service.verify_payment(db, booking.id)

        assert result.outcome == "paid"
        assert result.booking.paid_amount == booking.total_amount
        escrow = await escrow_service.get_by_booking(db, booking.id)
        assert escrow.amount == result.booking.paid_amount

    async def test_late_capture_refund_left_pending_when_provider_cannot_send(
        self, db, guest, listing, fake_gateway
    ):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        await booking_service.cancel_booking(db, actor_for(guest), booking.id)
        fake_gateway.refund_succeeds = False
        fake_gateway.mark_paid(intent.provider_transaction_id)

        result = await booking_service.verify_payment(db, booking.id)

        assert result.booking.payment_status == "refund_pending"
        assert result.booking.refund_amount == booking.total_amount
        assert result.booking.refunded_at is None

    async def test_manual_booking_cannot_be_polled(self, db, guest, listing):
        booking = await book(db, guest, listing)
        with pytest.raises(ValidationError):
            await booking_service.verify_payment(db, booking.id)

    async def test_stranger_cannot_pay(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        stranger = await create_user(db, "guest")
        with pytest.raises(AuthorizationError):
            await booking_service.initiate_payment(db, actor_for(stranger), booking.id)


class TestManualPayment:
    async def test_host_confirms_transfer(self, db, guest, host, listing):
        booking = await book(db, guest, listing)

        booking = await booking_service.confirm_manual_payment(
            db, actor_for(host), booking.id, reference="VIR-2291"
        )

        assert booking.status == BookingStatus.PAID.value
        escrow = await escrow_service.get_by_booking(db, booking.id)
        assert escrow.provider_ref == "VIR-2291"
        audit = await db.scalar(select(AuditLog).where(AuditLog.action == "booking_confirm_manual_payment"))
        assert audit.resource_id == booking.id

    async def test_second_confirmation_changes_nothing(self, db, guest, host, listing):
        booking = await book(db, guest, listing)
        await booking_service.confirm_manual_payment(db, actor_for(host), booking.id)
        history_before = await statuses_in_history(db, booking)

        booking = await booking_service.confirm_manual_payment(db, actor_for(host), booking.id)

        assert booking.paid_amount == booking.total_amount
        assert await escrow_count(db) == 1
        assert await statuses_in_history(db, booking) == history_before

    async def test_guest_cannot_confirm(self, db, guest, listing):
        booking = await book(db, guest, listing)
        with pytest.raises(AuthorizationError):
            await booking_service.confirm_manual_payment(db, actor_for(guest), booking.id)

    async def test_card_booking_is_not_confirmed_by_hand(self, db, guest, host, listing):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        with pytest.raises(ValidationError):
            await booking_service.confirm_manual_payment(db, actor_for(host), booking.id)

    async def test_pending_request_cannot_be_paid(self, db, guest, host, request_listing):
        booking = await book(db, guest, request_listing)
        with pytest.raises(InvalidTransition):
            await booking_service.confirm_manual_payment(db, actor_for(host), booking.id)


class TestCancellation:
    async def test_host_cancels_paid_booking(self, db, guest, host, listing):
        booking = await create_paid_booking(
            db,
            guest,
            listing,
            start_date=today() + timedelta(days=2),
            nights=1,
            subtotal=1_100_000,
            cleaning_fee=0,
            guest_service_fee=100_000,
            host_commission=33_000,
            host_payout=1_067_000,
            total_amount=1_200_000,
        )
        escrow = await escrow_service.create_escrow(db, booking, booking.payment_transaction_id)

        booking, refund = await booking_service.cancel_booking(
            db, actor_for(host), booking.id, reason="property_unavailable"
        )

        assert booking.status == BookingStatus.CANCELLED_BY_HOST.value
        assert booking.refund_amount == 1_200_000
        assert booking.cancellation_fee == 0
        assert booking.payment_status == "refunded"
        assert booking.cancelled_by_role == "host"
        assert refund.refund.total == 1_200_000
        assert escrow.status == EscrowStatus.REFUNDED.value
        assert escrow.refunded_amount == 1_200_000

    async def test_guest_cancels_two_days_before(self, db, guest, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=2))
        escrow = await escrow_service.create_escrow(db, booking, "manual_ref")

        booking, refund = await booking_service.cancel_booking(db, actor_for(guest), booking.id)

        assert booking.status == BookingStatus.CANCELLED_BY_GUEST.value
        assert refund.refund.subtotal_percent == Decimal("50")
        assert booking.refund_amount == 600_000
        assert booking.cancellation_fee == 588_000
        assert booking.payment_status == "partially_refunded"
        assert booking.refund_breakdown["policy"] == "moderate"
        assert escrow.status == EscrowStatus.PARTIALLY_REFUNDED.value

    async def test_refund_never_exceeds_total(self, db, guest, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=5))
        escrow = await escrow_service.create_escrow(db, booking, "manual_ref")
        calculator = MagicMock()
        calculator.calculate.return_value = inflated_refund(booking.total_amount)
        service = BookingService(calculator=calculator)

        booking, _ = await service.cancel_booking(db, actor_for(guest), booking.id)

        assert booking.refund_amount == booking.total_amount
        assert booking.cancellation_fee == 0
        assert booking.payment_status == "refunded"
        assert escrow.refunded_amount <= escrow.amount

    async def test_provider_refund_follows_local_writes(self, db, guest, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id)
        await booking_service.verify_payment(db, booking.id)

        booking, _ = await booking_service.cancel_booking(db, actor_for(guest), booking.id)

        # Cancelled right after booking, a month out: grace period, everything back
        assert booking.refund_amount == booking.total_amount
        assert booking.payment_status == "refunded"
        assert fake_gateway.refunds == [
            (intent.provider_transaction_id, booking.total_amount, "guest_cancellation")
        ]

    async def test_unconfirmed_provider_refund_stays_pending(self, db, guest, admin, listing, fake_gateway):
        booking = await book(db, guest, listing, method=PaymentMethod.CARD)
        booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
        fake_gateway.mark_paid(intent.provider_transaction_id)
        await booking_service.verify_payment(db, booking.id)
        fake_gateway.refund_succeeds = False

        booking, _ = await booking_service.cancel_booking(db, actor_for(guest), booking.id)

        assert booking.status == BookingStatus.CANCELLED_BY_GUEST.value
        assert booking.payment_status == "refund_pending"
        assert booking.refund_amount == booking.total_amount
        assert booking.refunded_at is None
        audit = await db.scalar(select(AuditLog).where(AuditLog.action == "booking_refund_pending_manual"))
        assert audit.resource_id == booking.id

        with pytest.raises(AuthorizationError):
            await booking_service.confirm_manual_refund(db, actor_for(guest), booking.id, "VIR-88")

        booking = await booking_service.confirm_manual_refund(db, actor_for(admin), booking.id, " VIR-88 ")

        assert booking.payment_status == "refunded"
        assert booking.refunded_at is not None
        with pytest.raises(InvalidTransition):
            await booking_service.confirm_manual_refund(db, actor_for(admin), booking.id, "VIR-88")

    async def test_manual_refund_needs_pending_refund(self, db, guest, admin, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=5))
        with pytest.raises(InvalidTransition):
            await booking_service.confirm_manual_refund(db, actor_for(admin), booking.id, "VIR-1")
        with pytest.raises(ValidationError):
            await booking_service.confirm_manual_refund(db, actor_for(admin), booking.id, "  ")

    async def test_unpaid_cancellation_moves_no_money(self, db, guest, listing):
        booking = await book(db, guest, listing)

        booking, _ = await booking_service.cancel_booking(db, actor_for(guest), booking.id)

        assert booking.status == BookingStatus.CANCELLED_BY_GUEST.value
        assert booking.refund_amount == 0
        assert booking.cancellation_fee == 0
        assert booking.payment_status == "pending"

    async def test_custom_percent_is_admin_only(self, db, guest, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=5))
        with pytest.raises(ValidationError):
            await booking_service.cancel_booking(
                db, actor_for(guest), booking.id, custom_refund_percent=Decimal("100")
            )

    async def test_admin_cancels_with_custom_percent(self, db, guest, admin, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=5))
        await escrow_service.create_escrow(db, booking, "manual_ref")

        booking, _ = await booking_service.cancel_booking(
            db,
            actor_for(admin),
            booking.id,
            reason="policy_violation",
            custom_refund_percent=Decimal("25"),
        )

        assert booking.status == BookingStatus.CANCELLED_BY_ADMIN.value
        assert booking.refund_amount == 350_000
        audit = await db.scalar(select(AuditLog).where(AuditLog.action == "booking_cancel_admin"))
        assert audit is not None

    async def test_active_stay_cannot_be_cancelled(self, db, guest, listing):
        booking = await create_paid_booking(
            db, guest, listing, start_date=today(), status=BookingStatus.ACTIVE
        )
        with pytest.raises(InvalidTransition):
            await booking_service.cancel_booking(db, actor_for(guest), booking.id)

    async def test_refund_preview_matches_role(self, db, guest, host, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=2))

        guest_view = await booking_service.refund_preview(db, actor_for(guest), booking.id)
        host_view = await booking_service.refund_preview(db, actor_for(host), booking.id)

        assert guest_view.refund.total < host_view.refund.total
        assert host_view.refund.total == booking.total_amount
        assert booking.status == BookingStatus.PAID.value


class TestStay:
    async def _paid(self, db, guest, host, listing, start):
        booking = await book(db, guest, listing, start=start, nights=2)
        return await booking_service.confirm_manual_payment(db, actor_for(host), booking.id)

    async def test_full_stay_needs_both_confirmations(self, db, guest, host, listing):
        booking = await self._paid(db, guest, host, listing, today())

        booking = await booking_service.check_in(db, actor_for(host), booking.id, "Keys handed over")
        assert booking.status == BookingStatus.ACTIVE.value
        booking = await booking_service.check_out(db, actor_for(host), booking.id)

        booking = await booking_service.confirm_completion(db, actor_for(host), booking.id)
        assert booking.status == BookingStatus.ACTIVE.value
        assert booking.completed_at is None
        escrow = await escrow_service.get_by_booking(db, booking.id)
        assert escrow.status == EscrowStatus.HELD.value

        booking = await booking_service.confirm_completion(db, actor_for(guest), booking.id)
        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.completed_at is not None
        assert escrow.status == EscrowStatus.RELEASED.value
        assert escrow.released_amount == escrow.host_amount

    async def test_check_in_before_start(self, db, guest, host, listing):
        booking = await self._paid(db, guest, host, listing, today() + timedelta(days=3))
        with pytest.raises(ValidationError):
            await booking_service.check_in(db, actor_for(host), booking.id)

    async def test_check_out_checks_in_first(self, db, guest, host, listing):
        booking = await self._paid(db, guest, host, listing, today())

        booking = await booking_service.check_out(db, actor_for(host), booking.id, damage_report="Broken lamp")

        assert booking.status == BookingStatus.ACTIVE.value
        assert booking.checked_in_at is not None
        assert booking.checked_out_at is not None
        assert booking.damage_report == "Broken lamp"

    async def test_completion_requires_check_out(self, db, guest, host, listing):
        booking = await self._paid(db, guest, host, listing, today())
        await booking_service.check_in(db, actor_for(host), booking.id)
        with pytest.raises(ValidationError):
            await booking_service.confirm_completion(db, actor_for(guest), booking.id)

    async def test_guest_cannot_check_in(self, db, guest, host, listing):
        booking = await self._paid(db, guest, host, listing, today())
        with pytest.raises(AuthorizationError):
            await booking_service.check_in(db, actor_for(guest), booking.id)

    async def test_frozen_escrow_is_not_released_on_completion(self, db, guest, host, admin, listing):
        booking = await self._paid(db, guest, host, listing, today())
        escrow = await escrow_service.get_by_booking(db, booking.id)
        await escrow_service.freeze_escrow(db, escrow, "Noise complaint", admin.id)
        await booking_service.check_out(db, actor_for(host), booking.id)

        await booking_service.confirm_completion(db, actor_for(host), booking.id)
        booking = await booking_service.confirm_completion(db, actor_for(guest), booking.id)

        assert booking.status == BookingStatus.COMPLETED.value
        assert escrow.status == EscrowStatus.FROZEN.value


class TestAdminActions:
    async def test_mark_disputed_freezes_escrow(self, db, guest, admin, listing):
        booking = await create_paid_booking(
            db, guest, listing, start_date=today() - timedelta(days=6), status=BookingStatus.COMPLETED
        )
        escrow = await escrow_service.create_escrow(db, booking, "manual_ref")

        booking = await booking_service.mark_disputed(db, actor_for(admin), booking.id, "Damage claim")

        assert booking.status == BookingStatus.DISPUTED.value
        assert escrow.status == EscrowStatus.FROZEN.value

    async def test_only_admin_marks_disputed(self, db, guest, host, listing):
        booking = await create_paid_booking(
            db, guest, listing, start_date=today() - timedelta(days=6), status=BookingStatus.COMPLETED
        )
        with pytest.raises(AuthorizationError):
            await booking_service.mark_disputed(db, actor_for(host), booking.id, "Damage claim")

    async def test_delete_unpaid_request(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)
        await booking_service.delete_unpaid_booking(db, actor_for(guest), booking.id)

        with pytest.raises(NotFoundError):
            await booking_service.get_booking(db, booking.id)

    async def test_paid_booking_is_not_deleted(self, db, guest, listing):
        booking = await create_paid_booking(db, guest, listing, start_date=today() + timedelta(days=5))
        with pytest.raises(ValidationError):
            await booking_service.delete_unpaid_booking(db, actor_for(guest), booking.id)


class TestSweeps:
    async def test_overdue_requests_expire(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)

        expired = await booking_service.expire_overdue(
            db, now=booking.host_response_deadline + timedelta(minutes=1)
        )

        assert expired == 1
        assert booking.status == BookingStatus.EXPIRED.value
        assert booking.auto_expired is True

    async def test_requests_within_deadline_stay(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)
        assert await booking_service.expire_overdue(db, now=booking.created_at) == 0
        assert booking.status == BookingStatus.PENDING.value

    async def test_expired_dates_are_released(self, db, guest, request_listing):
        start = today() + timedelta(days=20)
        booking = await book(db, guest, request_listing, start=start)
        await booking_service.expire_overdue(db, now=booking.host_response_deadline + timedelta(minutes=1))

        other_guest = await create_user(db, "guest")
        again = await book(db, other_guest, request_listing, start=start)
        assert again.status == BookingStatus.PENDING.value

    async def test_reminder_once(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)
        now = booking.host_response_deadline - timedelta(hours=6)

        due = await booking_service.due_for_reminder(db, now=now)
        assert [b.id for b in due] == [booking.id]

        await booking_service.mark_reminder_sent(db, booking)
        assert await booking_service.due_for_reminder(db, now=now) == []

    async def test_not_reminded_too_early(self, db, guest, request_listing):
        booking = await book(db, guest, request_listing)
        now = booking.host_response_deadline - timedelta(hours=20)
        assert await booking_service.due_for_reminder(db, now=now) == []
