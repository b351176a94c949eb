"""
Webhook routes - signed Stripe events.
"""
import logging

import stripe
from fastapi import APIRouter, Depends, Request

from ..config import settings
from ..errors import TravlError
from ..models.booking import BookingStatus
from ..services.booking_store import BookingRepository, cancel_booking, get_booking_repository
from ..services.payment_service import PaymentService, get_payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    repository: BookingRepository = Depends(get_booking_repository)
):
    """Verify the Stripe signature and react to payment intent events."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not settings.stripe_webhook_secret:
        raise TravlError("Webhook Error: webhook secret is not configured")
    if not signature:
        raise TravlError("Webhook Error: missing Stripe-Signature header")

    try:
        event = service.construct_webhook_event(payload, signature, settings.stripe_webhook_secret)
    except ValueError:
        raise TravlError("Webhook Error: invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise TravlError(f"Webhook Error: {e}")

    event_type = event["type"]
    intent = event["data"]["object"]

    if event_type == "payment_intent.succeeded":
        logger.info(f"Payment succeeded: {intent['id']}")
    elif event_type == "payment_intent.payment_failed":
        logger.warning(f"Payment failed: {intent['id']}")
        for booking in repository.list_all():
            if booking.transaction_id == intent["id"] and booking.status == BookingStatus.CONFIRMED:
                cancel_booking(repository, booking.id)
    else:
        logger.info(f"Unhandled event type: {event_type}")

    return {"received": True}
