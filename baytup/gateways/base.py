"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
Transport and provider failures are raised as GatewayError; a payment
the provider declined is reported through GatewayPaymentStatus.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"  # card rail (EUR)
    SLICKPAY = "slickpay"  # local invoicing rail (DZD)
    MANUAL = "manual"  # bank transfer / cash


@dataclass
class PayerInfo:
    """Guest details some providers require on the invoice."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


@dataclass
class PaymentIntent:
    """Result of creating a payment with the provider."""

    provider_transaction_id: str
    client_payload: dict = field(default_factory=dict)


@dataclass
class GatewayPaymentStatus:
    """Provider-side status of a transaction."""

    is_paid: bool
    raw_status: str
    is_failed: bool = False
    provider_charge_ref: str | None = None
    amount: int | None = None


@dataclass
class GatewayRefund:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    # Header carrying the webhook signature
    signature_header: str = ""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""

    @abstractmethod
    async def create_intent(
        self,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        """Create a payment intent/invoice.

        Args:
            amount: Amount in minor units
            currency: Settlement currency code
            booking_ref: Booking id used to correlate callbacks
            payer_info: Guest details
            metadata: Additional metadata

        Raises:
            GatewayError: Provider rejected the request or was unreachable
        """

    @abstractmethod
    async def get_status(self, provider_transaction_id: str) -> GatewayPaymentStatus:
        """Query the provider for the transaction's current status."""

    @abstractmethod
    def verify_webhook_signature(self, raw_payload: bytes, signature_header: str | None) -> bool:
        """Check a webhook's signature against the raw request body."""

    @abstractmethod
    def extract_booking_reference(self, payload: dict) -> str | None:
        """Pull the booking correlation id out of a verified webhook payload."""

    @abstractmethod
    async def process_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> GatewayRefund:
        """Refund part or all of a captured payment."""
