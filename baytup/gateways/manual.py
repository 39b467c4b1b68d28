"""Manual payment gateway adapter for bank transfers and cash."""

from baytup.gateways.base import (
    GatewayPaymentStatus,
    GatewayRefund,
    GatewayType,
    PayerInfo,
    PaymentGateway,
    PaymentIntent,
)


class ManualGateway(PaymentGateway):
    """Manual payment gateway.

    Funds move outside the platform; the host or an admin confirms
    receipt, so the provider status is never "paid" and there are no
    webhooks.
    """

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def create_intent(
        self,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        return PaymentIntent(
            provider_transaction_id=f"manual_{booking_ref}",
            client_payload={
                "type": "manual",
                "status": "pending_verification",
                "amount": amount,
                "currency": currency,
                "instructions": "Pay the host directly; the booking is confirmed once receipt is recorded",
            },
        )

    async def get_status(self, provider_transaction_id: str) -> GatewayPaymentStatus:
        return GatewayPaymentStatus(is_paid=False, raw_status="pending_verification")

    def verify_webhook_signature(self, raw_payload: bytes, signature_header: str | None) -> bool:
        return False

    def extract_booking_reference(self, payload: dict) -> str | None:
        return None

    async def process_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> GatewayRefund:
        """Record a refund that an admin settles by bank transfer."""
        return GatewayRefund(
            success=True,
            refund_id=f"refund_{provider_transaction_id}",
            raw_response={
                "type": "manual_refund",
                "status": "pending",
                "note": "Admin must process refund manually via bank transfer",
                "amount": amount,
                "reason": reason,
            },
        )
