"""Stripe webhook handler"""

import json

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import structlog

from app.billing.stripe_events import InvalidSignature, handle_event, verify_signature
from app.config import settings
from app.database import get_db

router = APIRouter()
logger = structlog.get_logger()


@router.post("")
async def handle_stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_signature: Optional[str] = Header(default=None),
):
    """
    Receive a Stripe event.
    The signature is verified against the raw body before anything in
    the payload is trusted.
    """
    raw_body = await request.body()

    if not stripe_signature:
        logger.error("Missing stripe-signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        payload = verify_signature(raw_body, stripe_signature, settings.stripe_webhook_secret)
    except InvalidSignature as e:
        logger.error("Webhook signature verification failed", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.info("Stripe event received", event_id=event.get("id"), event_type=event.get("type"))

    try:
        await handle_event(db, event)
    except Exception as e:
        # 500 makes Stripe redeliver the event
        logger.exception("Stripe webhook handler failed", event_id=event.get("id"), error=str(e))
        await db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    return {"received": True}
