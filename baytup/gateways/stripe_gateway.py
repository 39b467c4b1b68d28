"""Stripe payment gateway adapter (card rail)."""

import asyncio
import logging

from baytup.config import settings
from baytup.core.exceptions import GatewayError
from baytup.gateways.base import (
    GatewayPaymentStatus,
    GatewayRefund,
    GatewayType,
    PayerInfo,
    PaymentGateway,
    PaymentIntent,
)

logger = logging.getLogger(__name__)

FAILED_STATUSES = {"canceled", "requires_payment_method"}


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntent implementation.

    The SDK is synchronous, so calls run in a worker thread.
    """

    signature_header = "stripe-signature"

    def __init__(self):
        self.secret_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    def _client(self):
        if not self.secret_key:
            raise GatewayError(self.gateway_type.value, "Stripe not configured")

        import stripe

        stripe.api_key = self.secret_key
        return stripe

    async def create_intent(
        self,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        """Create Stripe PaymentIntent."""
        stripe = self._client()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount,
                currency=currency.lower(),
                receipt_email=payer_info.email or None,
                metadata={"booking_id": booking_ref, **(metadata or {})},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed for booking {booking_ref}: {e}")
            raise GatewayError(self.gateway_type.value, str(e))

        return PaymentIntent(
            provider_transaction_id=intent.id,
            client_payload={"client_secret": intent.client_secret, "id": intent.id},
        )

    async def get_status(self, provider_transaction_id: str) -> GatewayPaymentStatus:
        """Retrieve Stripe PaymentIntent status."""
        stripe = self._client()
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, provider_transaction_id)
        except stripe.StripeError as e:
            raise GatewayError(self.gateway_type.value, str(e))

        return GatewayPaymentStatus(
            is_paid=intent.status == "succeeded",
            is_failed=intent.status in FAILED_STATUSES,
            raw_status=intent.status,
            provider_charge_ref=getattr(intent, "latest_charge", None),
            amount=getattr(intent, "amount_received", None),
        )

    async def process_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> GatewayRefund:
        """Process Stripe refund."""
        stripe = self._client()
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=provider_transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )
        except stripe.StripeError as e:
            return GatewayRefund(success=False, error_message=str(e))

        return GatewayRefund(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            raw_response={"status": refund.status, "id": refund.id},
        )

    def verify_webhook_signature(self, raw_payload: bytes, signature_header: str | None) -> bool:
        """Verify the Stripe-Signature header."""
        if not self.webhook_secret or not signature_header:
            return False

        import stripe

        try:
            stripe.Webhook.construct_event(raw_payload, signature_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            return False
        return True

    def extract_booking_reference(self, payload: dict) -> str | None:
        obj = payload.get("data", {}).get("object", {})
        return (obj.get("metadata") or {}).get("booking_id")
