"""
Payment and settlement schemas.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from recordshop.core.enums import SettlementState


class PaidLineItem(BaseModel):
    """One purchased line, tagged with the local record id stored in product metadata."""
    record_id: Optional[int] = None
    quantity: int = 1
    description: Optional[str] = None
    unit_amount: Optional[int] = None  # minor units as charged


class PaymentConfirmedEvent(BaseModel):
    checkout_id: str
    payment_intent_id: Optional[str] = None
    user_id: Optional[int] = None
    cart_id: Optional[int] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    amount_total: int = 0
    currency: str = "usd"
    shipping_address: Optional[Dict[str, Any]] = None
    line_items: List[PaidLineItem] = Field(default_factory=list)


class RemoteAction(BaseModel):
    """A marketplace call made during settlement, kept for follow-up if the transaction rolls back."""
    action: str  # "delete" or "create"
    record_id: int
    listing_id: Optional[int] = None
    succeeded: bool = True
    error: Optional[str] = None


class SettlementResult(BaseModel):
    checkout_id: str
    state: SettlementState
    order_id: Optional[int] = None
    duplicate: bool = False
    remote_actions: List[RemoteAction] = Field(default_factory=list)
    error: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None
