# recordshop/routes/webhooks.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from recordshop.dependencies import get_webhook_processor
from recordshop.services.webhook_processor import WebhookProcessor

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """
    Receive signed Stripe events. The raw body is needed for signature
    verification. Any settlement failure surfaces as a non-2xx response so Stripe
    retries the delivery.
    """
    payload = await request.body()
    result = await processor.handle_stripe_webhook(payload, stripe_signature)
    return {"received": True, **result}
