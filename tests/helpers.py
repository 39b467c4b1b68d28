"""Shared test helpers for the booking core tests.

Plain functions and classes importable by conftest.py and the test
modules. These are NOT fixtures.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from baytup.core.permissions import Actor
from baytup.domain.booking_state import ActorRole, BookingStatus
from baytup.domain.escrow_state import EscrowStatus
from baytup.domain.payment_state import PaymentStatus
from baytup.gateways.base import (
    GatewayPaymentStatus,
    GatewayRefund,
    GatewayType,
    PayerInfo,
    PaymentGateway,
    PaymentIntent,
)
from baytup.gateways.slickpay import sign_payload
from baytup.models.booking import Booking
from baytup.models.escrow import Escrow
from baytup.models.listing import Listing
from baytup.models.user import User
from baytup.services.pricing_service import pricing_service
from baytup.services.refund_calculator import (
    CancellationTiming,
    RefundAmounts,
    RefundDistribution,
    RefundResult,
)
from baytup.utils.booking_number import generate_booking_number

WEBHOOK_SECRET = "test-webhook-secret"
VALID_RIB = "00799999000123456789"


class FakeGateway(PaymentGateway):
    """In-memory provider; tests flip transaction statuses by hand."""

    signature_header = "x-slickpay-signature"

    def __init__(self, gateway_type: GatewayType = GatewayType.SLICKPAY, delay: float = 0):
        self._type = gateway_type
        self.delay = delay
        self.statuses: dict[str, GatewayPaymentStatus] = {}
        self.intents: list[dict] = []
        self.refunds: list[tuple[str, int, str]] = []
        self.refund_succeeds = True

    @property
    def gateway_type(self) -> GatewayType:
        return self._type

    async def create_intent(
        self,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        txn = f"txn_{booking_ref}"
        self.intents.append({"amount": amount, "currency": currency, "booking_ref": booking_ref})
        self.statuses.setdefault(txn, GatewayPaymentStatus(is_paid=False, raw_status="unpaid"))
        return PaymentIntent(provider_transaction_id=txn, client_payload={"payment_url": f"https://pay.test/{txn}"})

    async def get_status(self, provider_transaction_id: str) -> GatewayPaymentStatus:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.statuses.get(
            provider_transaction_id, GatewayPaymentStatus(is_paid=False, raw_status="unknown")
        )

    def mark_paid(self, provider_transaction_id: str, amount: int | None = None) -> None:
        self.statuses[provider_transaction_id] = GatewayPaymentStatus(
            is_paid=True,
            raw_status="paid",
            provider_charge_ref=f"ch_{provider_transaction_id}",
            amount=amount,
        )

    def mark_failed(self, provider_transaction_id: str) -> None:
        self.statuses[provider_transaction_id] = GatewayPaymentStatus(
            is_paid=False, is_failed=True, raw_status="failed"
        )

    def verify_webhook_signature(self, raw_payload: bytes, signature_header: str | None) -> bool:
        return signature_header == sign_payload(raw_payload, WEBHOOK_SECRET)

    def extract_booking_reference(self, payload: dict) -> str | None:
        return (payload.get("webhook_meta_data") or {}).get("bookingId")

    async def process_refund(
        self, provider_transaction_id: str, amount: int, reason: str
    ) -> GatewayRefund:
        self.refunds.append((provider_transaction_id, amount, reason))
        if not self.refund_succeeds:
            return GatewayRefund(success=False, error_message="Refund must be settled manually")
        return GatewayRefund(success=True, refund_id=f"re_{len(self.refunds)}")


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=ActorRole(user.role))


def today() -> date:
    return datetime.now(UTC).date()


async def create_user(db, role: str = "guest") -> User:
    user = User(
        email=f"{role}-{uuid4().hex[:8]}@baytup.test",
        role=role,
        first_name="Test",
        last_name=role.title(),
    )
    db.add(user)
    await db.flush()
    return user


async def create_listing(db, host: User, **overrides) -> Listing:
    values = {
        "host_id": host.id,
        "title": "Apartment in Oran",
        "base_price": 250_000,
        "cleaning_fee": 100_000,
        "currency": "DZD",
        "instant_book": True,
        "cancellation_policy": "moderate",
        "max_guests": 4,
    }
    values.update(overrides)
    listing = Listing(**values)
    db.add(listing)
    await db.flush()
    return listing


async def create_paid_booking(
    db,
    guest: User,
    listing: Listing,
    start_date: date,
    nights: int = 4,
    status: BookingStatus = BookingStatus.PAID,
    created_at: datetime | None = None,
    **amounts,
) -> Booking:
    """Insert a booking that already went through payment.

    Pricing comes from the pricing service unless explicit amounts are
    passed (they must then balance).
    """
    pricing = pricing_service.calculate_booking_amounts(
        base_price=listing.base_price,
        nights=nights,
        cleaning_fee=listing.cleaning_fee,
        currency=listing.currency,
    )
    values = {
        "subtotal": pricing.subtotal,
        "cleaning_fee": pricing.cleaning_fee,
        "guest_service_fee": pricing.guest_service_fee,
        "host_commission": pricing.host_commission,
        "taxes": 0,
        "total_amount": pricing.total_amount,
        "host_payout": pricing.host_payout,
    }
    values.update(amounts)
    now = created_at or datetime.now(UTC) - timedelta(days=30)
    booking = Booking(
        booking_number=await generate_booking_number(db),
        listing_id=listing.id,
        guest_id=guest.id,
        host_id=listing.host_id,
        start_date=start_date,
        end_date=start_date + timedelta(days=nights),
        adults=2,
        base_price=listing.base_price,
        nights=nights,
        currency=listing.currency,
        cancellation_policy=listing.cancellation_policy,
        payment_method="bank_transfer",
        payment_provider=GatewayType.MANUAL.value,
        payment_status=PaymentStatus.PAID.value,
        payment_transaction_id=f"manual_{uuid4().hex[:8]}",
        status=status.value,
        created_at=now,
        updated_at=now,
        **values,
    )
    booking.paid_amount = booking.total_amount
    booking.paid_at = now
    db.add(booking)
    await db.flush()
    return booking


async def create_released_escrow(
    db,
    guest: User,
    listing: Listing,
    host_amount: int,
    booking_status: BookingStatus = BookingStatus.COMPLETED,
    trigger: str = "booking_completed",
) -> Escrow:
    """A stay whose host share was released, by default a completed one."""
    booking = await create_paid_booking(
        db,
        guest,
        listing,
        start_date=today() - timedelta(days=10),
        status=booking_status,
    )
    platform_amount = 50_000
    escrow = Escrow(
        booking_id=booking.id,
        payer_id=guest.id,
        payee_id=listing.host_id,
        amount=host_amount + platform_amount,
        currency=listing.currency,
        host_amount=host_amount,
        platform_amount=platform_amount,
        original_total=host_amount + platform_amount,
        status=EscrowStatus.RELEASED.value,
        released_amount=host_amount,
        released_at=datetime.now(UTC),
        release_trigger=trigger,
    )
    db.add(escrow)
    await db.flush()
    return escrow


def payout_payload(amount: int, currency: str = "DZD") -> dict:
    return {
        "amount": amount,
        "currency": currency,
        "bank_name": "CPA",
        "account_holder_name": "Test Host",
        "account_number": "0012345678",
        "rib": VALID_RIB,
    }


def auth_headers(user: User) -> dict[str, str]:
    from baytup.core.security import create_actor_token

    return {"Authorization": f"Bearer {create_actor_token(str(user.id), user.role)}"}


def inflated_refund(total: int) -> RefundResult:
    """A refund result claiming ten times what was paid."""
    huge = total * 10
    return RefundResult(
        refund=RefundAmounts(
            subtotal=huge,
            subtotal_percent=Decimal("1000"),
            cleaning_fee=0,
            guest_service_fee=0,
            taxes=0,
            total=huge,
        ),
        distribution=RefundDistribution(
            guest_refund=huge,
            host_receives=huge,
            host_loss=0,
            host_commission_on_kept=0,
            platform_keeps=-huge,
        ),
        cancellation=CancellationTiming(
            cancellation_date=datetime.now(UTC),
            reason="guest_cancellation",
            is_before_check_in=True,
            is_after_check_out=False,
            is_during_stay=False,
            is_in_grace_period=False,
        ),
        policy="moderate",
        summary="Inflated",
    )
