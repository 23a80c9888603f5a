import logging

import stripe
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from calcula.core.errors import ValidationError
from calcula.db.session import get_db
from calcula.services import stripe_gateway, subscriptions

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    """
    Stripe webhook. Register https://<backend>/functions/stripe-webhook in the
    Stripe dashboard for checkout.session.completed, invoice.payment_succeeded
    and customer.subscription.deleted.
    """
    if not stripe_signature:
        raise ValidationError("Missing Stripe signature")

    payload = await request.body()
    try:
        event = stripe_gateway.construct_webhook_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("[STRIPE-WEBHOOK] Signature verification failed: %s", e)
        raise ValidationError("Invalid signature")

    try:
        subscriptions.process_event(db, event)
    except Exception:
        db.rollback()
        logger.exception("[STRIPE-WEBHOOK] Error processing %s", stripe_gateway.field(event, "type"))
        return JSONResponse(status_code=500, content={"error": "Handler failure"})

    return {"received": True}
