"""Tests for the payment gateway adapters and the routing service."""

from __future__ import annotations

import json

import httpx
import pytest

from baytup.core.exceptions import GatewayError, GatewayTimeout, ValidationError
from baytup.gateways.base import GatewayType, PayerInfo
from baytup.gateways.manual import ManualGateway
from baytup.gateways.slickpay import SlickPayGateway, sign_payload
from baytup.gateways.stripe_gateway import StripeGateway
from baytup.services.gateway_service import GatewayService

from .helpers import WEBHOOK_SECRET, FakeGateway

PAYER = PayerInfo(first_name="Amina", last_name="Guest", email="amina@baytup.test", phone="0555000000")


def slickpay_with(handler) -> SlickPayGateway:
    gateway = SlickPayGateway(transport=httpx.MockTransport(handler))
    gateway.webhook_secret = WEBHOOK_SECRET
    return gateway


class TestSlickPay:
    async def test_create_intent_sends_whole_dinars(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 4521, "url": "https://pay.slick-pay.com/4521"})

        intent = await slickpay_with(handler).create_intent(
            amount=1_188_000, currency="DZD", booking_ref="BKG-1", payer_info=PAYER
        )

        assert intent.provider_transaction_id == "4521"
        assert intent.client_payload["payment_url"] == "https://pay.slick-pay.com/4521"
        assert seen["method"] == "POST"
        assert seen["path"].endswith("/users/invoices")
        assert seen["body"]["amount"] == 11_880
        assert seen["body"]["webhook_meta_data"]["bookingId"] == "BKG-1"
        # Short payer address is replaced with a default one
        assert seen["body"]["address"] == "Algiers, Algeria"

    async def test_centimes_round_up_to_the_next_dinar(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 4522, "url": "https://pay.slick-pay.com/4522"})

        await slickpay_with(handler).create_intent(
            amount=1_079_999, currency="DZD", booking_ref="BKG-7", payer_info=PAYER
        )

        assert seen["body"]["amount"] == 10_800
        assert seen["body"]["items"][0]["price"] == 10_800

    async def test_paid_invoice(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "completed": 1,
                    "data": {"payment_status": "paid", "amount": 11_880, "transaction_id": "T-77"},
                },
            )

        status = await slickpay_with(handler).get_status("4521")

        assert status.is_paid is True
        assert status.is_failed is False
        assert status.amount == 1_188_000
        assert status.provider_charge_ref == "T-77"

    async def test_failed_invoice(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"completed": 0, "data": {"payment_status": "expired"}})

        status = await slickpay_with(handler).get_status("4521")
        assert status.is_paid is False
        assert status.is_failed is True

    async def test_http_error(self):
        gateway = slickpay_with(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(GatewayError):
            await gateway.get_status("4521")

    async def test_transport_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GatewayTimeout):
            await slickpay_with(handler).get_status("4521")

    async def test_missing_invoice_id(self):
        gateway = slickpay_with(lambda request: httpx.Response(200, json={"message": "invalid phone"}))
        with pytest.raises(GatewayError):
            await gateway.create_intent(1_000_000, "DZD", "BKG-2", PAYER)

    async def test_only_dinars(self):
        gateway = slickpay_with(lambda request: httpx.Response(200, json={}))
        with pytest.raises(GatewayError):
            await gateway.create_intent(10_000, "EUR", "BKG-3", PAYER)

    async def test_refund_is_manual(self):
        gateway = slickpay_with(lambda request: httpx.Response(200, json={}))
        refund = await gateway.process_refund("4521", 600_000, "Booking cancelled")
        assert refund.success is False


class TestWebhookSignature:
    def test_valid_signature(self):
        gateway = slickpay_with(lambda request: httpx.Response(200))
        body = b'{"webhook_meta_data": {"bookingId": "BKG-1"}}'
        assert gateway.verify_webhook_signature(body, sign_payload(body, WEBHOOK_SECRET))

    def test_tampered_body(self):
        gateway = slickpay_with(lambda request: httpx.Response(200))
        signature = sign_payload(b'{"amount": 100}', WEBHOOK_SECRET)
        assert not gateway.verify_webhook_signature(b'{"amount": 1}', signature)

    def test_missing_header(self):
        gateway = slickpay_with(lambda request: httpx.Response(200))
        assert not gateway.verify_webhook_signature(b"{}", None)

    def test_booking_reference(self):
        gateway = slickpay_with(lambda request: httpx.Response(200))
        assert gateway.extract_booking_reference({"webhook_meta_data": {"bookingId": "BKG-9"}}) == "BKG-9"
        assert gateway.extract_booking_reference({}) is None

    def test_stripe_reference_and_unconfigured_secret(self):
        gateway = StripeGateway()
        gateway.webhook_secret = None
        payload = {"data": {"object": {"metadata": {"booking_id": "BKG-5"}}}}

        assert gateway.extract_booking_reference(payload) == "BKG-5"
        assert not gateway.verify_webhook_signature(b"{}", "t=1,v1=abc")


class TestManualGateway:
    async def test_never_reports_paid(self):
        gateway = ManualGateway()
        intent = await gateway.create_intent(918_000, "DZD", "BKG-4", PAYER)
        status = await gateway.get_status(intent.provider_transaction_id)

        assert intent.provider_transaction_id == "manual_BKG-4"
        assert status.is_paid is False
        assert not gateway.verify_webhook_signature(b"{}", "anything")

    async def test_refund_is_recorded(self):
        refund = await ManualGateway().process_refund("manual_BKG-4", 600_000, "Cancelled")
        assert refund.success is True
        assert refund.raw_response["amount"] == 600_000


class TestGatewayService:
    async def test_slow_provider_times_out(self):
        service = GatewayService(timeout=0.01)
        service.register(FakeGateway(delay=1))

        with pytest.raises(GatewayTimeout):
            await service.get_status(GatewayType.SLICKPAY, "txn_1")

    async def test_registered_gateway_is_used(self):
        service = GatewayService()
        fake = FakeGateway()
        service.register(fake)

        intent = await service.create_intent("slickpay", 918_000, "DZD", "BKG-6", PAYER)

        assert intent.provider_transaction_id == "txn_BKG-6"
        assert fake.intents == [{"amount": 918_000, "currency": "DZD", "booking_ref": "BKG-6"}]

    @pytest.mark.parametrize(
        "currency,method,expected",
        [
            ("DZD", "card", GatewayType.SLICKPAY),
            ("eur", "card", GatewayType.STRIPE),
            ("DZD", "bank_transfer", GatewayType.MANUAL),
            ("EUR", "cash", GatewayType.MANUAL),
        ],
    )
    def test_routing(self, currency, method, expected):
        assert GatewayService().gateway_type_for(currency, method) == expected

    def test_unsettled_currency(self):
        with pytest.raises(ValidationError):
            GatewayService().gateway_type_for("USD", "card")

    def test_default_instances(self):
        service = GatewayService()
        assert isinstance(service.get_gateway("manual"), ManualGateway)
        assert service.signature_header(GatewayType.SLICKPAY) == "x-slickpay-signature"
