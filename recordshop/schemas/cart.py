"""
Cart request/response schemas.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from recordshop.core.enums import RecordStatus
from recordshop.schemas.base import BaseSchema


class RecordSummary(BaseSchema):
    id: int
    title: str
    artist: str
    price: float
    condition: Optional[str] = None
    sleeve_condition: Optional[str] = None
    cover_image: Optional[str] = None
    quantity: int
    status: RecordStatus


class CartItemRead(BaseSchema):
    id: int
    record_id: int
    quantity: int
    record: Optional[RecordSummary] = None


class CartRead(BaseSchema):
    id: int
    user_id: int
    items: List[CartItemRead] = Field(default_factory=list)
    total_quantity: int = 0
    subtotal: float = 0.0

    @classmethod
    def from_cart(cls, cart) -> "CartRead":
        items = [CartItemRead.model_validate(item) for item in cart.items]
        subtotal = sum((item.record.price if item.record else 0) * item.quantity for item in items)
        return cls(
            id=cart.id,
            user_id=cart.user_id,
            items=items,
            total_quantity=sum(item.quantity for item in items),
            subtotal=round(subtotal, 2),
        )


class AddItemRequest(BaseModel):
    record_id: int
    quantity: int = 1


class UpdateItemRequest(BaseModel):
    quantity: int


class GuestCartItem(BaseModel):
    """Item from a browser-side guest cart. Range checks happen during the merge."""
    record_id: int
    quantity: int


class MergeCartRequest(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)


class MergeSummary(BaseModel):
    merged: int = 0
    capped: int = 0
    skipped: int = 0
    warnings: List[str] = Field(default_factory=list)


class MergeCartResponse(BaseModel):
    cart: CartRead
    summary: MergeSummary
