"""Payment gateway webhook router"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ...config import STRIPE_WEBHOOK_SECRET
from ...webhook_security import verify_stripe_webhook
from .router import get_payment_lifecycle
from .service import PaymentLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payment Webhooks"])


def get_webhook_secret() -> str:
    return STRIPE_WEBHOOK_SECRET or ""


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    secret: str = Depends(get_webhook_secret),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Gateway event delivery (signature verified against the raw body)"""
    raw_body = await verify_stripe_webhook(request, secret)

    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError as e:
        logger.error(f"❌ Webhook body is not valid JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    logger.info(f"📥 Payment webhook: {event.get('type')} ({event.get('id')})")
    return lifecycle.handle_gateway_event(event)
