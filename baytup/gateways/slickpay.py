"""SlickPay payment gateway adapter (local invoicing rail, DZD).

Invoices are created through the SlickPay v2 API; the guest pays on the
hosted page and SlickPay calls back with the booking id in
``webhook_meta_data``.
"""

import hashlib
import hmac
import logging

import httpx

from baytup.config import settings
from baytup.core.exceptions import GatewayError, GatewayTimeout
from baytup.gateways.base import (
    GatewayPaymentStatus,
    GatewayRefund,
    GatewayType,
    PayerInfo,
    PaymentGateway,
    PaymentIntent,
)

logger = logging.getLogger(__name__)

FAILED_STATUSES = {"failed", "canceled", "cancelled", "expired"}
DEFAULT_ADDRESS = "Algiers, Algeria"


def sign_payload(raw_payload: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest SlickPay sends in x-slickpay-signature."""
    return hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


class SlickPayGateway(PaymentGateway):
    """SlickPay invoice implementation."""

    signature_header = "x-slickpay-signature"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = settings.slickpay_api_key
        self.base_url = settings.slickpay_base_url
        self.webhook_secret = settings.slickpay_webhook_secret
        self.timeout = settings.gateway_timeout_seconds
        self._transport = transport

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.SLICKPAY

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.api_key or ''}",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send a request, mapping transport failures to gateway errors."""
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            logger.error(f"SlickPay {method} {path} timed out after {self.timeout}s")
            raise GatewayTimeout(self.gateway_type.value, self.timeout)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"SlickPay {method} {path} returned {e.response.status_code}: {e.response.text[:500]}"
            )
            raise GatewayError(self.gateway_type.value, f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"SlickPay {method} {path} failed: {e}")
            raise GatewayError(self.gateway_type.value, str(e))

    async def create_intent(
        self,
        amount: int,
        currency: str,
        booking_ref: str,
        payer_info: PayerInfo,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        """Create a SlickPay invoice for the booking total."""
        if currency != "DZD":
            raise GatewayError(self.gateway_type.value, f"Unsupported currency {currency}")

        # SlickPay takes whole dinars, not centimes; never bill less than asked
        amount_dzd = -(-amount // 100)
        address = payer_info.address if len(payer_info.address) >= 5 else DEFAULT_ADDRESS
        description = (metadata or {}).get("description", f"Booking {booking_ref}")

        payload = {
            "amount": amount_dzd,
            "url": settings.payment_return_url,
            "firstname": payer_info.first_name,
            "lastname": payer_info.last_name,
            "phone": payer_info.phone,
            "email": payer_info.email,
            "address": address,
            "items": [{"name": description[:100], "price": amount_dzd, "quantity": 1}],
            "webhook_url": f"{settings.api_base_url}{settings.api_prefix}/webhooks/slickpay",
            "webhook_signature": self.webhook_secret,
            "webhook_meta_data": {"bookingId": booking_ref, "platform": "baytup"},
        }

        data = await self._request("POST", "/users/invoices", json=payload)
        if not data.get("id"):
            raise GatewayError(self.gateway_type.value, data.get("message") or "No invoice id returned")

        return PaymentIntent(
            provider_transaction_id=str(data["id"]),
            client_payload={"payment_url": data.get("url"), "invoice_id": data["id"]},
        )

    async def get_status(self, provider_transaction_id: str) -> GatewayPaymentStatus:
        """Fetch invoice status; completed == 1 means paid."""
        data = await self._request("GET", f"/users/invoices/{provider_transaction_id}")
        invoice = data.get("data") or {}
        payment_status = invoice.get("payment_status") or "unpaid"
        is_paid = data.get("completed") == 1

        amount = invoice.get("amount")
        return GatewayPaymentStatus(
            is_paid=is_paid,
            is_failed=not is_paid and payment_status in FAILED_STATUSES,
            raw_status=payment_status,
            provider_charge_ref=invoice.get("transaction_id"),
            amount=int(amount) * 100 if amount is not None else None,
        )

    async def process_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> GatewayRefund:
        """SlickPay has no refund endpoint; refunds are paid out by bank transfer."""
        logger.info(
            f"SlickPay invoice {provider_transaction_id}: manual refund of {amount} required ({reason})"
        )
        return GatewayRefund(
            success=False,
            error_message="Refund must be settled manually",
            raw_response={"invoice_id": provider_transaction_id, "amount": amount},
        )

    def verify_webhook_signature(self, raw_payload: bytes, signature_header: str | None) -> bool:
        """Timing-safe comparison of the HMAC-SHA256 signature."""
        if not signature_header or not self.webhook_secret:
            return False
        expected = sign_payload(raw_payload, self.webhook_secret)
        return hmac.compare_digest(expected, signature_header.strip())

    def extract_booking_reference(self, payload: dict) -> str | None:
        meta = payload.get("webhook_meta_data") or {}
        return meta.get("bookingId")
