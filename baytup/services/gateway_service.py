"""Payment gateway service.

Routes payment operations to the appropriate gateway adapter and bounds
every outbound call with a timeout.
No business logic here - only gateway coordination.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from baytup.config import settings
from baytup.core.exceptions import GatewayTimeout, ValidationError
from baytup.domain.payment_state import is_manual_method
from baytup.gateways.base import (
    GatewayPaymentStatus,
    GatewayRefund,
    GatewayType,
    PayerInfo,
    PaymentGateway,
    PaymentIntent,
)
from baytup.gateways.manual import ManualGateway
from baytup.gateways.slickpay import SlickPayGateway
from baytup.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_safe_environment(gateway: PaymentGateway) -> None:
    """Block live-money credentials outside production.

    Raises:
        RuntimeError: If a live gateway is configured in a non-production environment
    """
    if _is_production():
        return
    if isinstance(gateway, StripeGateway) and (gateway.secret_key or "").startswith("sk_live_"):
        raise RuntimeError(
            f"Refusing to use a live Stripe key in {settings.environment} environment"
        )
    if isinstance(gateway, SlickPayGateway) and settings.slickpay_use_prod:
        raise RuntimeError(
            f"Refusing to use the SlickPay production API in {settings.environment} environment"
        )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self, timeout: float | None = None):
        self._gateways: dict[GatewayType, PaymentGateway] = {}
        self.timeout = timeout or settings.gateway_timeout_seconds

    def register(self, gateway: PaymentGateway) -> None:
        """Install a gateway instance for its type (overrides the default)."""
        self._gateways[gateway.gateway_type] = gateway

    def reset(self) -> None:
        self._gateways.clear()

    def get_gateway(self, gateway_type: str | GatewayType) -> PaymentGateway:
        """Get or create gateway instance."""
        gateway_type = GatewayType(gateway_type)

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.STRIPE:
                self._gateways[gateway_type] = StripeGateway()
            elif gateway_type == GatewayType.SLICKPAY:
                self._gateways[gateway_type] = SlickPayGateway()
            else:
                self._gateways[gateway_type] = ManualGateway()

        return self._gateways[gateway_type]

    def gateway_type_for(self, currency: str, payment_method: str) -> GatewayType:
        """Pick the provider for a booking; decided once at creation.

        Raises:
            ValidationError: If no gateway settles the currency
        """
        if is_manual_method(payment_method):
            return GatewayType.MANUAL
        gateway_name = settings.currency_gateways.get(currency.upper())
        if gateway_name is None:
            raise ValidationError(f"No payment gateway settles {currency}")
        return GatewayType(gateway_name)

    async def _bounded(self, gateway: PaymentGateway, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError:
            logger.error(f"Gateway {gateway.gateway_type.value} timed out after {self.timeout}s")
            raise GatewayTimeout(gateway.gateway_type.value, self.timeout)

    async def create_intent(
        self,
        gateway_type: str | GatewayType,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        """Create payment via specified gateway."""
        gateway = self.get_gateway(gateway_type)
        _assert_safe_environment(gateway)
        return await self._bounded(
            gateway,
            gateway.create_intent(
                amount=amount,
                currency=currency,
                booking_ref=booking_ref,
                payer_info=payer_info,
                metadata=metadata,
            ),
        )

    async def get_status(
        self,
        gateway_type: str | GatewayType,
        provider_transaction_id: str,
    ) -> GatewayPaymentStatus:
        """Query payment status via gateway."""
        gateway = self.get_gateway(gateway_type)
        return await self._bounded(gateway, gateway.get_status(provider_transaction_id))

    async def process_refund(
        self,
        gateway_type: str | GatewayType,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> GatewayRefund:
        """Process refund via gateway."""
        gateway = self.get_gateway(gateway_type)
        _assert_safe_environment(gateway)
        return await self._bounded(
            gateway,
            gateway.process_refund(
                provider_transaction_id=provider_transaction_id,
                amount=amount,
                reason=reason,
            ),
        )

    def verify_webhook_signature(
        self,
        gateway_type: str | GatewayType,
        raw_payload: bytes,
        signature_header: str | None,
    ) -> bool:
        """Verify webhook from gateway."""
        gateway = self.get_gateway(gateway_type)
        return gateway.verify_webhook_signature(raw_payload, signature_header)

    def signature_header(self, gateway_type: str | GatewayType) -> str:
        return self.get_gateway(gateway_type).signature_header

    def extract_booking_reference(self, gateway_type: str | GatewayType, payload: dict) -> str | None:
        return self.get_gateway(gateway_type).extract_booking_reference(payload)


# Singleton instance
gateway_service = GatewayService()
