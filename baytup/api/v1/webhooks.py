"""Webhook endpoints for payment gateways.

The signature is checked against the raw request body before anything
is parsed. A verified delivery only triggers a provider status check
(verify_payment); the webhook body itself is never trusted for status.
"""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Request, status

from baytup.api.deps import DbSession
from baytup.core.exceptions import (
    NotFoundError,
    SignatureVerificationFailed,
    ValidationError,
)
from baytup.core.idempotency import webhook_deliveries, webhook_delivery_key
from baytup.gateways.base import GatewayType
from baytup.schemas.payment import WebhookAck
from baytup.services.booking_service import booking_service
from baytup.services.gateway_service import gateway_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _handle_webhook(
    gateway_type: GatewayType,
    request: Request,
    db: DbSession,
) -> WebhookAck:
    provider = gateway_type.value
    raw_body = await request.body()
    signature = request.headers.get(gateway_service.signature_header(gateway_type))

    if not gateway_service.verify_webhook_signature(gateway_type, raw_body, signature):
        logger.warning(f"Rejected {provider} webhook with invalid signature")
        raise SignatureVerificationFailed()

    delivery_key = webhook_delivery_key(provider, raw_body)
    cached = webhook_deliveries.get(delivery_key)
    if cached is not None:
        logger.info(f"Duplicate {provider} webhook delivery ignored")
        return WebhookAck(**cached)

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    reference = gateway_service.extract_booking_reference(gateway_type, payload)
    if reference is None:
        # Events that do not concern a booking payment
        return WebhookAck(status="ignored")

    try:
        booking_id = UUID(str(reference))
    except ValueError:
        raise NotFoundError("Booking", str(reference))

    verification = await booking_service.verify_payment(db, booking_id)
    ack = WebhookAck(status="ok", booking_id=booking_id, outcome=verification.outcome)
    logger.info(f"{provider} webhook for booking {booking_id}: {verification.outcome}")

    if verification.outcome in ("paid", "already_paid", "failed"):
        # Commit before remembering the delivery so a failed commit is retried
        await db.commit()
        webhook_deliveries.set(delivery_key, ack.model_dump(mode="json"))
    return ack


@router.post("/stripe", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(request: Request, db: DbSession) -> WebhookAck:
    """Handle Stripe webhook events."""
    return await _handle_webhook(GatewayType.STRIPE, request, db)


@router.post("/slickpay", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def slickpay_webhook(request: Request, db: DbSession) -> WebhookAck:
    """Handle SlickPay invoice callbacks."""
    return await _handle_webhook(GatewayType.SLICKPAY, request, db)
