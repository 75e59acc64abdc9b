# recordshop/routes/cart.py
from fastapi import APIRouter, Depends

from recordshop.core.security import get_current_user_id
from recordshop.dependencies import get_cart_service
from recordshop.schemas.cart import (
    AddItemRequest,
    CartRead,
    MergeCartRequest,
    MergeCartResponse,
    UpdateItemRequest,
)
from recordshop.services.cart_service import CartService

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", response_model=CartRead)
async def get_cart(
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    """Current user's cart with live record details"""
    cart = await service.get_cart(user_id)
    return CartRead.from_cart(cart)


@router.post("/items", response_model=CartRead)
async def add_cart_item(
    body: AddItemRequest,
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.add_item(user_id, body.record_id, body.quantity)
    return CartRead.from_cart(cart)


@router.put("/items/{item_id}", response_model=CartRead)
async def update_cart_item(
    item_id: int,
    body: UpdateItemRequest,
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.update_item(user_id, item_id, body.quantity)
    return CartRead.from_cart(cart)


@router.delete("/items/{item_id}", response_model=CartRead)
async def remove_cart_item(
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.remove_item(user_id, item_id)
    return CartRead.from_cart(cart)


@router.post("/merge", response_model=MergeCartResponse)
async def merge_guest_cart(
    body: MergeCartRequest,
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
):
    """Merge a browser-side guest cart into the user's cart after login"""
    cart, summary = await service.merge_guest_cart(user_id, body.items)
    return MergeCartResponse(cart=CartRead.from_cart(cart), summary=summary)
