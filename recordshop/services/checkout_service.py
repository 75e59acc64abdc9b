"""Stripe Checkout session creation from the user's cart."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from recordshop.core.config import Settings, get_settings
from recordshop.core.enums import RecordStatus
from recordshop.core.exceptions import InsufficientStockError, RecordUnavailableError, ValidationError
from recordshop.core.utils import to_minor_units
from recordshop.models.cart import Cart, CartItem
from recordshop.schemas.payment import CheckoutSessionResponse
from recordshop.services.payments import RECORD_ID_METADATA_KEY, StripePaymentProcessor

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(self, db: AsyncSession, payments: StripePaymentProcessor, settings: Optional[Settings] = None):
        self.db = db
        self.payments = payments
        self.settings = settings or get_settings()

    async def create_checkout_session(
        self,
        user_id: int,
        customer_email: Optional[str] = None,
    ) -> CheckoutSessionResponse:
        """
        Build a Checkout session from the cart after re-checking every item
        against the live record.

        Raises:
            ValidationError: empty cart, or nothing purchasable in it
            RecordUnavailableError: an item is no longer for sale
            InsufficientStockError: an item's quantity exceeds live stock
            PaymentProviderError: Stripe rejected the session
        """
        stmt = (
            select(Cart)
            .where(Cart.user_id == user_id)
            .options(selectinload(Cart.items).selectinload(CartItem.record))
            .execution_options(populate_existing=True)
        )
        cart = (await self.db.execute(stmt)).scalar_one_or_none()
        await self.db.commit()
        if cart is None or not cart.items:
            raise ValidationError("Your cart is empty")

        line_items: List[Dict[str, Any]] = []
        total_quantity = 0
        for item in cart.items:
            record = item.record
            if record is None or record.status != RecordStatus.FOR_SALE:
                raise RecordUnavailableError(f"Cart item {item.id} is no longer available")
            if item.quantity > record.quantity:
                raise InsufficientStockError(
                    f"Only {record.quantity} available for '{record.title}' (cart has {item.quantity})"
                )

            unit_amount = to_minor_units(record.price)
            if unit_amount <= 0:
                logger.warning(f"Skipping record {record.id} with non-positive price {record.price}")
                continue

            product_data: Dict[str, Any] = {
                "name": f"{record.artist} - {record.title}",
                "metadata": {RECORD_ID_METADATA_KEY: str(record.id)},
            }
            if record.condition:
                product_data["description"] = f"Condition: {record.condition}"
            if record.cover_image:
                product_data["images"] = [record.cover_image]

            line_items.append({
                "price_data": {
                    "currency": self.settings.STRIPE_CURRENCY,
                    "unit_amount": unit_amount,
                    "product_data": product_data,
                },
                "quantity": item.quantity,
            })
            total_quantity += item.quantity

        if not line_items:
            raise ValidationError("No purchasable items in cart")

        metadata = {
            "user_id": str(user_id),
            "cart_id": str(cart.id),
            "item_count": str(len(line_items)),
            "total_quantity": str(total_quantity),
        }
        logger.info(f"Creating checkout for user {user_id}: {len(line_items)} lines, {total_quantity} units")
        return await self.payments.create_checkout_session(line_items, metadata, customer_email=customer_email)
