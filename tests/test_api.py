"""HTTP-level tests: webhooks, auth and a few booking and payout routes.

Rows are seeded through the ``db`` session and committed before any
request; assertions afterwards use fresh sessions.
"""

from __future__ import annotations

import json
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from baytup.domain.payment_state import PaymentMethod
from baytup.gateways.slickpay import sign_payload
from baytup.models.booking import Booking
from baytup.models.escrow import Escrow
from baytup.schemas.booking import BookingCreate
from baytup.services.booking_service import booking_service

from .helpers import (
    WEBHOOK_SECRET,
    actor_for,
    auth_headers,
    create_listing,
    create_released_escrow,
    create_user,
    payout_payload,
    today,
)

API = "/api/v1"


def signed(payload: dict) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    headers = {
        "content-type": "application/json",
        "x-slickpay-signature": sign_payload(body, WEBHOOK_SECRET),
    }
    return body, headers


@pytest.fixture
async def card_booking(db, guest, listing, fake_gateway):
    """A DZD card booking with an open provider invoice, committed."""
    start = today() + timedelta(days=30)
    data = BookingCreate(
        listing_id=listing.id,
        start_date=start,
        end_date=start + timedelta(days=3),
        adults=2,
        payment_method=PaymentMethod.CARD,
    )
    booking = await booking_service.create_booking(db, actor_for(guest), data)
    booking, intent = await booking_service.initiate_payment(db, actor_for(guest), booking.id)
    await db.commit()
    return booking, intent.provider_transaction_id


class TestSlickPayWebhook:
    async def test_bad_signature(self, client, card_booking):
        booking, _ = card_booking
        body, headers = signed({"webhook_meta_data": {"bookingId": str(booking.id)}})
        headers["x-slickpay-signature"] = "0" * 64

        response = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)
        assert response.status_code == 401

    async def test_missing_signature(self, client, fake_gateway):
        response = await client.post(f"{API}/webhooks/slickpay", content=b"{}")
        assert response.status_code == 401

    async def test_unknown_booking(self, client, fake_gateway):
        body, headers = signed({"webhook_meta_data": {"bookingId": str(uuid4())}})
        response = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)
        assert response.status_code == 404

    async def test_reference_is_not_a_booking_id(self, client, fake_gateway):
        body, headers = signed({"webhook_meta_data": {"bookingId": "BTP-0001"}})
        response = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)
        assert response.status_code == 404

    async def test_event_without_booking_is_ignored(self, client, fake_gateway):
        body, headers = signed({"event": "account.updated"})
        response = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    async def test_unpaid_invoice_leaves_booking_pending(self, client, session_maker, card_booking):
        booking, _ = card_booking
        body, headers = signed({"webhook_meta_data": {"bookingId": str(booking.id)}})

        response = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "pending"
        async with session_maker() as session:
            stored = await session.get(Booking, booking.id)
            assert stored.status == "pending_payment"

    async def test_paid_then_redelivered(self, client, session_maker, fake_gateway, card_booking):
        booking, txn = card_booking
        fake_gateway.mark_paid(txn)
        body, headers = signed({"webhook_meta_data": {"bookingId": str(booking.id)}, "completed": 1})

        first = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)
        duplicate = await client.post(f"{API}/webhooks/slickpay", content=body, headers=headers)
        # Same booking, different delivery body: goes back to the provider
        body2, headers2 = signed({"webhook_meta_data": {"bookingId": str(booking.id)}, "completed": 1, "n": 2})
        later = await client.post(f"{API}/webhooks/slickpay", content=body2, headers=headers2)

        assert first.status_code == 200
        assert first.json() == {"status": "ok", "booking_id": str(booking.id), "outcome": "paid"}
        assert duplicate.json() == first.json()
        assert later.json()["outcome"] == "already_paid"

        async with session_maker() as session:
            stored = await session.get(Booking, booking.id)
            escrows = await session.scalar(
                select(func.count()).select_from(Escrow).where(Escrow.booking_id == booking.id)
            )
        assert stored.status == "paid"
        assert stored.payment_status == "paid"
        assert escrows == 1


class TestBookingRoutes:
    async def test_requires_token(self, client):
        response = await client.get(f"{API}/bookings/")
        assert response.status_code == 401

    async def test_garbage_token(self, client):
        response = await client.get(f"{API}/bookings/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_create_and_fetch(self, client, db, guest, listing, fake_gateway):
        await db.commit()
        start = today() + timedelta(days=20)

        response = await client.post(
            f"{API}/bookings/",
            json={
                "listing_id": str(listing.id),
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=3)).isoformat(),
                "adults": 2,
                "payment_method": "card",
            },
            headers=auth_headers(guest),
        )

        assert response.status_code == 201
        created = response.json()
        assert created["status"] == "pending_payment"
        assert created["total_amount"] == 918_000
        assert created["guest_count"] == 2

        fetched = await client.get(f"{API}/bookings/{created['id']}", headers=auth_headers(guest))
        assert fetched.status_code == 200
        assert fetched.json()["booking_number"] == created["booking_number"]

    async def test_end_before_start_is_422(self, client, db, guest, listing):
        await db.commit()
        start = today() + timedelta(days=20)
        response = await client.post(
            f"{API}/bookings/",
            json={
                "listing_id": str(listing.id),
                "start_date": start.isoformat(),
                "end_date": start.isoformat(),
            },
            headers=auth_headers(guest),
        )
        assert response.status_code == 422

    async def test_host_approves_request(self, client, db, guest, host):
        listing = await create_listing(db, host, instant_book=False)
        start = today() + timedelta(days=20)
        booking = await booking_service.create_booking(
            db,
            actor_for(guest),
            BookingCreate(
                listing_id=listing.id,
                start_date=start,
                end_date=start + timedelta(days=2),
                payment_method=PaymentMethod.BANK_TRANSFER,
            ),
        )
        await db.commit()

        as_guest = await client.post(f"{API}/bookings/{booking.id}/approve", headers=auth_headers(guest))
        as_host = await client.post(f"{API}/bookings/{booking.id}/approve", headers=auth_headers(host))

        assert as_guest.status_code == 403
        assert as_host.status_code == 200
        assert as_host.json()["status"] == "confirmed"

    async def test_stranger_cannot_see_booking(self, client, db, card_booking):
        booking, _ = card_booking
        stranger = await create_user(db, "guest")
        await db.commit()

        response = await client.get(f"{API}/bookings/{booking.id}", headers=auth_headers(stranger))
        assert response.status_code == 403

    async def test_refund_preview_for_unpaid_booking(self, client, guest, card_booking):
        booking, _ = card_booking
        response = await client.post(
            f"{API}/bookings/{booking.id}/refund-preview", headers=auth_headers(guest)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["policy"] == "moderate"
        assert body["policy_description"].startswith("Full refund up to 5 days")
        assert body["refundable"] is False
        assert body["not_refundable_reason"] == "Payment has not been captured"


class TestAdminRoutes:
    async def test_guest_cannot_read_escrow(self, client, db, guest, card_booking):
        booking, _ = card_booking
        response = await client.get(f"{API}/escrow/{booking.id}", headers=auth_headers(guest))
        assert response.status_code == 403

    async def test_admin_escrow_missing(self, client, db, admin, card_booking):
        booking, _ = card_booking
        await db.commit()
        response = await client.get(f"{API}/escrow/{booking.id}", headers=auth_headers(admin))
        assert response.status_code == 404


class TestPayoutRoutes:
    async def test_balance_and_request(self, client, db, guest, host, listing):
        await create_released_escrow(db, guest, listing, 500_000)
        await db.commit()

        balance = await client.get(f"{API}/payouts/balance", headers=auth_headers(host))
        assert balance.status_code == 200
        assert balance.json()["available"] == 500_000
        assert balance.json()["minimum_payout"] == 100_000

        created = await client.post(
            f"{API}/payouts/", json=payout_payload(200_000), headers=auth_headers(host)
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        too_much = await client.post(
            f"{API}/payouts/", json=payout_payload(400_000), headers=auth_headers(host)
        )
        assert too_much.status_code == 400

    async def test_guest_has_no_balance(self, client, db, guest):
        await db.commit()
        response = await client.get(f"{API}/payouts/balance", headers=auth_headers(guest))
        assert response.status_code == 403


class TestHealth:
    async def test_reports_database_and_rails(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "ok"
        assert body["settlement_rails"]["DZD"] == "slickpay"
