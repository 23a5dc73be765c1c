"""Stripe webhook handler."""

import json
import logging
from typing import Annotated, Any

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from booking_engine.config import ENVIRONMENT
from booking_engine.dependencies import get_booking_service, get_gateway
from booking_engine.services.bookings.service import BookingService
from booking_engine.services.payments import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _parse_event(payload: bytes, signature: str | None, gateway: StripeGateway) -> Any:
    if gateway.webhook_secret:
        try:
            return gateway.construct_event(payload, signature or "")
        except ValueError:
            logger.error("Invalid webhook payload")
            raise HTTPException(status_code=400, detail="Invalid payload") from None
        except stripe.SignatureVerificationError:
            logger.error("Invalid webhook signature")
            raise HTTPException(status_code=400, detail="Invalid signature") from None

    if ENVIRONMENT != "development":
        logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=400, detail="Webhook signing is not configured")

    try:
        return json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload") from None


@router.post(
    "/webhook",
    operation_id="handleStripeWebhook",
    summary="Receive Stripe payment events",
)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Annotated[str | None, Header()] = None,
    gateway: StripeGateway = Depends(get_gateway),
    service: BookingService = Depends(get_booking_service),
) -> dict[str, bool]:
    event = _parse_event(await request.body(), stripe_signature, gateway)

    event_type = event["type"]
    intent = event["data"]["object"]
    logger.info("Received webhook event: %s", event_type)

    if event_type == "payment_intent.succeeded":
        await service.handle_payment_result(intent["id"], True, intent.get("latest_charge"))
    elif event_type == "payment_intent.payment_failed":
        await service.handle_payment_result(intent["id"], False)
    else:
        logger.info("Unhandled event type: %s", event_type)

    return {"received": True}
