"""Inbound webhooks."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request

from lukaut.billing.stripe_webhook import construct_event, handle_event
from lukaut.db.connection import get_session

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """Receive Stripe subscription events.

    A bad signature is a 400; every verified event is acknowledged with 200,
    including types we do not act on.
    """
    payload = await request.body()
    event = construct_event(payload, request.headers.get("Stripe-Signature"))

    async with get_session() as session:
        handled = await handle_event(session, event)

    logger.info("stripe_webhook_received", event_type=event.get("type"), handled=handled)
    return {"received": True, "handled": handled}
