# recordshop/routes/checkout.py
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from recordshop.core.security import get_current_user_id
from recordshop.dependencies import get_checkout_service
from recordshop.schemas.payment import CheckoutSessionResponse
from recordshop.services.checkout_service import CheckoutService

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


class CheckoutRequest(BaseModel):
    customer_email: Optional[str] = None


@router.post("/session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    body: Optional[CheckoutRequest] = None,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Create a Stripe Checkout session for the current cart"""
    customer_email = body.customer_email if body else None
    return await service.create_checkout_session(user_id, customer_email=customer_email)
