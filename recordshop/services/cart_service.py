"""
Per-user cart operations.

Stock is checked at write time against the live record row, locked with
SELECT ... FOR UPDATE so two concurrent writes for the same record cannot both
pass the check.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from recordshop.core.enums import RecordStatus
from recordshop.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    RecordUnavailableError,
    ValidationError,
)
from recordshop.database import transaction
from recordshop.models.cart import Cart, CartItem
from recordshop.models.record import Record
from recordshop.schemas.cart import GuestCartItem, MergeSummary

logger = logging.getLogger(__name__)


def _require_positive_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    return quantity


class CartService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_cart(self, user_id: int) -> Cart:
        """Get or create the user's cart, with live record details."""
        async with transaction(self.db):
            cart = await self._get_or_create_cart(user_id)
            cart_id = cart.id
        return await self._load_cart(cart_id)

    async def add_item(self, user_id: int, record_id: int, quantity: int = 1) -> Cart:
        """
        Add a record to the cart, summing with any existing line.

        Raises:
            ValidationError: non-positive quantity, or the user's own record
            NotFoundError: unknown record
            RecordUnavailableError: record not for sale
            InsufficientStockError: existing + requested exceeds live stock
        """
        quantity = _require_positive_quantity(quantity)

        async with transaction(self.db):
            cart = await self._get_or_create_cart(user_id)
            record = await self._lock_record(record_id)
            if record is None:
                raise NotFoundError(f"Record {record_id} not found")
            self._check_purchasable(record, user_id)

            item = await self._find_item(cart.id, record_id)
            existing_qty = item.quantity if item else 0
            if existing_qty + quantity > record.quantity:
                raise InsufficientStockError(
                    f"Only {record.quantity} available for '{record.title}'; "
                    f"{existing_qty} already in cart"
                )

            if item:
                item.quantity = existing_qty + quantity
            else:
                self.db.add(CartItem(cart_id=cart.id, record_id=record_id, quantity=quantity))
            cart_id = cart.id

        logger.info(f"User {user_id} added record {record_id} x{quantity} to cart {cart_id}")
        return await self._load_cart(cart_id)

    async def update_item(self, user_id: int, item_id: int, quantity: int) -> Cart:
        """
        Set the quantity of one cart line. Use remove_item for zero.

        Raises:
            ValidationError: non-positive quantity
            NotFoundError: unknown cart item
            PermissionDeniedError: the item belongs to another user's cart
            RecordUnavailableError: record no longer for sale
            InsufficientStockError: quantity exceeds live stock
        """
        quantity = _require_positive_quantity(quantity)

        async with transaction(self.db):
            item = await self._get_item(item_id)
            if item is None:
                raise NotFoundError(f"Cart item {item_id} not found")
            cart = await self._get_cart_row(user_id)
            if cart is None or item.cart_id != cart.id:
                raise PermissionDeniedError("Cart item does not belong to this user")

            record = await self._lock_record(item.record_id)
            if record is None or record.status != RecordStatus.FOR_SALE:
                raise RecordUnavailableError("This record is no longer for sale")
            if quantity > record.quantity:
                raise InsufficientStockError(f"Only {record.quantity} available for '{record.title}'")

            item.quantity = quantity
            cart_id = cart.id

        return await self._load_cart(cart_id)

    async def remove_item(self, user_id: int, item_id: int) -> Cart:
        """Remove a cart line. Removing an absent item is not an error."""
        async with transaction(self.db):
            cart = await self._get_or_create_cart(user_id)
            item = await self._get_item(item_id)
            if item is not None:
                if item.cart_id != cart.id:
                    raise PermissionDeniedError("Cart item does not belong to this user")
                await self.db.delete(item)
            else:
                logger.debug(f"Cart item {item_id} already absent for user {user_id}")
            cart_id = cart.id

        return await self._load_cart(cart_id)

    async def merge_guest_cart(
        self,
        user_id: int,
        items: Iterable[Union[GuestCartItem, Dict[str, Any]]],
    ) -> Tuple[Cart, MergeSummary]:
        """
        Merge a guest cart into the user's cart in one transaction.

        Quantities are summed with any existing line and capped at live stock.
        Malformed, unknown, unavailable, self-owned and out-of-stock items are
        skipped with a warning; none of them aborts the merge.
        """
        summary = MergeSummary()

        combined: Dict[int, int] = {}
        for raw in items or []:
            try:
                guest = raw if isinstance(raw, GuestCartItem) else GuestCartItem.model_validate(raw)
            except PydanticValidationError:
                self._skip(summary, f"Malformed guest cart item {raw!r}")
                continue
            if guest.quantity <= 0:
                self._skip(summary, f"Invalid quantity {guest.quantity} for record {guest.record_id}")
                continue
            combined[guest.record_id] = combined.get(guest.record_id, 0) + guest.quantity

        async with transaction(self.db):
            cart = await self._get_or_create_cart(user_id)

            for record_id in sorted(combined):
                guest_qty = combined[record_id]
                record = await self._lock_record(record_id)
                if record is None:
                    self._skip(summary, f"Record {record_id} not found")
                    continue
                if record.status != RecordStatus.FOR_SALE:
                    self._skip(summary, f"Record {record_id} is no longer for sale")
                    continue
                if self._owned_by(record, user_id):
                    self._skip(summary, f"Record {record_id} belongs to the buyer")
                    continue
                if record.quantity <= 0:
                    self._skip(summary, f"Record {record_id} is out of stock")
                    continue

                item = await self._find_item(cart.id, record_id)
                desired = (item.quantity if item else 0) + guest_qty
                final = min(desired, record.quantity)
                if final < desired:
                    summary.capped += 1
                    message = f"Record {record_id}: quantity capped at {final} (requested {desired})"
                    summary.warnings.append(message)
                    logger.warning(f"Guest cart merge for user {user_id}: {message}")

                if item:
                    item.quantity = final
                else:
                    self.db.add(CartItem(cart_id=cart.id, record_id=record_id, quantity=final))
                summary.merged += 1

            cart_id = cart.id

        logger.info(
            f"Merged guest cart for user {user_id}: merged={summary.merged} "
            f"capped={summary.capped} skipped={summary.skipped}"
        )
        return await self._load_cart(cart_id), summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _owned_by(record: Record, user_id: int) -> bool:
        return record.owner_id is not None and record.owner_id == user_id

    def _check_purchasable(self, record: Record, user_id: int) -> None:
        if record.status != RecordStatus.FOR_SALE:
            raise RecordUnavailableError(f"'{record.title}' is no longer for sale")
        if self._owned_by(record, user_id):
            raise ValidationError("You cannot add your own record to your cart")

    @staticmethod
    def _skip(summary: MergeSummary, message: str) -> None:
        summary.skipped += 1
        summary.warnings.append(message)
        logger.warning(f"Guest cart merge: {message}")

    async def _get_cart_row(self, user_id: int) -> Optional[Cart]:
        result = await self.db.execute(select(Cart).where(Cart.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_or_create_cart(self, user_id: int) -> Cart:
        cart = await self._get_cart_row(user_id)
        if cart is not None:
            return cart
        try:
            async with self.db.begin_nested():
                cart = Cart(user_id=user_id)
                self.db.add(cart)
            logger.info(f"Created cart for user {user_id}")
            return cart
        except IntegrityError:
            # A concurrent request created it first
            return (await self.db.execute(select(Cart).where(Cart.user_id == user_id))).scalar_one()

    async def _load_cart(self, cart_id: int) -> Cart:
        stmt = (
            select(Cart)
            .where(Cart.id == cart_id)
            .options(selectinload(Cart.items).selectinload(CartItem.record))
            .execution_options(populate_existing=True)
        )
        cart = (await self.db.execute(stmt)).scalar_one()
        # End the read-only transaction opened by the load
        await self.db.commit()
        return cart

    async def _lock_record(self, record_id: int) -> Optional[Record]:
        stmt = (
            select(Record)
            .where(Record.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _get_item(self, item_id: int) -> Optional[CartItem]:
        stmt = select(CartItem).where(CartItem.id == item_id).execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _find_item(self, cart_id: int, record_id: int) -> Optional[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart_id, CartItem.record_id == record_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()
