"""
Order settlement state machine.

    RECEIVED -> VALIDATED -> SETTLING -> SETTLED
                    |            |
                    +------------+---> FAILED

A confirmed payment becomes exactly one Order. Inside a single transaction every
purchased record is re-read under a row lock and checked for status and stock
before anything is changed. Only then are the immutable item snapshots written,
each record decremented, its Discogs listing re-synchronized and the buyer's
cart emptied. Discogs has no partial-quantity update, so a listing with stock
left is deleted and created again; a failed create after a successful delete
aborts the whole settlement. The confirmation email goes out after commit and
never affects the outcome.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from recordshop.core.config import Settings, get_settings
from recordshop.core.enums import DISCOGS_FOR_SALE, OrderStatus, RecordStatus, SettlementState
from recordshop.core.exceptions import (
    CriticalInvariantError,
    ExternalGatewayError,
    IdempotentNoop,
    SettlementTimeoutError,
)
from recordshop.core.utils import to_minor_units
from recordshop.database import transaction
from recordshop.integrations.base import CatalogGateway, ListingPayload
from recordshop.models.cart import Cart, CartItem
from recordshop.models.order import Order, OrderItem
from recordshop.models.record import Record
from recordshop.schemas.payment import PaymentConfirmedEvent, RemoteAction, SettlementResult

logger = logging.getLogger(__name__)


class OrderSettlement:
    """Converts one PaymentConfirmedEvent into a settled order."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: CatalogGateway,
        settings: Optional[Settings] = None,
        notifier=None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.notifier = notifier
        self.timeout = self.settings.SETTLEMENT_TIMEOUT_SECONDS if timeout is None else timeout
        self.state = SettlementState.RECEIVED

    def _transition(self, new_state: SettlementState, checkout_id: str) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Settlement for {checkout_id} already terminal ({self.state.value})")
        logger.debug(f"Settlement {checkout_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def settle(self, event: PaymentConfirmedEvent) -> SettlementResult:
        """
        Settle a confirmed payment.

        Returns:
            SettlementResult: SETTLED, with ``duplicate=True`` when an order already existed

        Raises:
            CriticalInvariantError: missing record linkage, stock violated after payment,
                or relist failure after delete; nothing was committed
        """
        checkout_id = event.checkout_id
        self.state = SettlementState.RECEIVED
        actions: List[RemoteAction] = []
        logger.info(f"Settling checkout {checkout_id} ({len(event.line_items)} line items)")

        try:
            await self._check_idempotency(checkout_id)
            self._validate(event)
            self._transition(SettlementState.VALIDATED, checkout_id)

            self._transition(SettlementState.SETTLING, checkout_id)
            try:
                order_id = await asyncio.wait_for(self._settle_in_transaction(event, actions), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise SettlementTimeoutError(
                    f"Settlement for checkout {checkout_id} exceeded {self.timeout}s", checkout_id=checkout_id
                )
            except IntegrityError:
                # Lost a race against a concurrent delivery of the same event
                await self._check_idempotency(checkout_id)
                raise

        except IdempotentNoop as noop:
            self._transition(SettlementState.SETTLED, checkout_id)
            logger.info(f"Checkout {checkout_id} already settled as order {noop.order_id}; no action taken")
            return SettlementResult(
                checkout_id=checkout_id,
                state=self.state,
                order_id=noop.order_id,
                duplicate=True,
            )
        except Exception as e:
            self._transition(SettlementState.FAILED, checkout_id)
            self._report_failure(checkout_id, e, actions)
            raise

        self._transition(SettlementState.SETTLED, checkout_id)
        logger.info(f"Checkout {checkout_id} settled as order {order_id}")

        await self._send_confirmation(order_id)
        return SettlementResult(
            checkout_id=checkout_id,
            state=self.state,
            order_id=order_id,
            remote_actions=actions,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    async def _check_idempotency(self, checkout_id: str) -> None:
        existing = (
            await self.db.execute(select(Order.id).where(Order.checkout_id == checkout_id))
        ).scalar_one_or_none()
        await self.db.commit()
        if existing is not None:
            raise IdempotentNoop(checkout_id, order_id=existing)

    @staticmethod
    def _validate(event: PaymentConfirmedEvent) -> None:
        if not event.line_items:
            raise CriticalInvariantError(
                f"Checkout {event.checkout_id} has no line items", checkout_id=event.checkout_id
            )
        for index, line in enumerate(event.line_items):
            if line.record_id is None:
                logger.error(
                    f"CRITICAL: checkout {event.checkout_id} line {index} ('{line.description}') "
                    f"carries no record id; manual investigation required"
                )
                raise CriticalInvariantError(
                    f"Line item {index} of checkout {event.checkout_id} is missing its record id",
                    checkout_id=event.checkout_id,
                )
            if line.quantity <= 0:
                raise CriticalInvariantError(
                    f"Line item {index} of checkout {event.checkout_id} has quantity {line.quantity}",
                    checkout_id=event.checkout_id,
                    record_id=line.record_id,
                )

    async def _settle_in_transaction(self, event: PaymentConfirmedEvent, actions: List[RemoteAction]) -> int:
        async with transaction(self.db):
            order = Order(
                user_id=event.user_id,
                checkout_id=event.checkout_id,
                payment_intent_id=event.payment_intent_id,
                status=OrderStatus.PAID,
                total_amount=event.amount_total,
                currency=event.currency,
                customer_name=event.customer_name,
                customer_email=event.customer_email,
                shipping_address=event.shipping_address,
            )
            self.db.add(order)
            await self.db.flush()
            order_id = order.id

            # Every line is locked and checked before any stock or Discogs change
            records: Dict[int, Record] = {}
            demanded: Dict[int, int] = {}
            for line in event.line_items:
                if line.record_id not in records:
                    record = await self._lock_record(line.record_id)
                    if record is None:
                        self._critical(event.checkout_id, line.record_id, "record no longer exists")
                    records[line.record_id] = record
                demanded[line.record_id] = demanded.get(line.record_id, 0) + line.quantity

            for record_id, quantity in demanded.items():
                record = records[record_id]
                if record.status != RecordStatus.FOR_SALE:
                    self._critical(event.checkout_id, record.id, f"record status is {record.status.value}")
                if record.quantity < quantity:
                    self._critical(
                        event.checkout_id,
                        record.id,
                        f"purchased {quantity} but only {record.quantity} in stock",
                    )

            for line in event.line_items:
                record = records[line.record_id]
                self.db.add(OrderItem(
                    order_id=order_id,
                    record_id=record.id,
                    title=record.title,
                    artist=record.artist,
                    price=line.unit_amount if line.unit_amount is not None else to_minor_units(record.price),
                    quantity=line.quantity,
                ))

                record.quantity -= line.quantity
                if record.quantity == 0:
                    record.status = RecordStatus.SOLD
                await self.db.flush()

                if record.discogs_listing_id is not None:
                    await self._resync_listing(record, event.checkout_id, actions)

            if event.user_id is not None:
                await self._clear_cart(event.user_id)
            else:
                logger.info(f"Checkout {event.checkout_id} has no user id; no cart to clear")

        return order_id

    async def _resync_listing(self, record: Record, checkout_id: str, actions: List[RemoteAction]) -> None:
        """Delete the old listing and, when stock remains, create its replacement."""
        old_listing_id = record.discogs_listing_id
        relist = record.quantity > 0

        if relist and record.discogs_release_id is None:
            self._critical(checkout_id, record.id, "cannot relist without a release id")

        try:
            await self.gateway.delete_listing(old_listing_id)
            actions.append(RemoteAction(action="delete", record_id=record.id, listing_id=old_listing_id))
        except ExternalGatewayError as e:
            actions.append(RemoteAction(
                action="delete", record_id=record.id, listing_id=old_listing_id, succeeded=False, error=str(e)
            ))
            logger.warning(
                f"Failed to delete Discogs listing {old_listing_id} for record {record.id} "
                f"(checkout {checkout_id}): {e}"
                + ("; relisting anyway, a duplicate listing may result" if relist else "")
            )

        if not relist:
            return

        payload = ListingPayload(
            release_id=record.discogs_release_id,
            condition=record.condition,
            sleeve_condition=record.sleeve_condition,
            price=record.price,
            status=DISCOGS_FOR_SALE,
            comments=record.notes,
            location=record.location,
            weight=record.weight,
        )
        try:
            new_listing_id = await self.gateway.create_listing(payload)
        except ExternalGatewayError as e:
            actions.append(RemoteAction(action="create", record_id=record.id, succeeded=False, error=str(e)))
            self._critical(
                checkout_id,
                record.id,
                f"relist failed after deleting listing {old_listing_id}: {e}",
            )
        if not new_listing_id:
            actions.append(RemoteAction(action="create", record_id=record.id, succeeded=False, error="no listing id"))
            self._critical(checkout_id, record.id, f"relist after deleting listing {old_listing_id} returned no id")

        actions.append(RemoteAction(action="create", record_id=record.id, listing_id=new_listing_id))
        record.discogs_listing_id = new_listing_id
        await self.db.flush()
        logger.info(f"Record {record.id} relisted: listing {old_listing_id} -> {new_listing_id}")

    async def _clear_cart(self, user_id: int) -> None:
        result = await self.db.execute(
            delete(CartItem)
            .where(CartItem.cart_id.in_(select(Cart.id).where(Cart.user_id == user_id)))
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"Cleared {result.rowcount or 0} cart items for user {user_id}")

    async def _lock_record(self, record_id: int) -> Optional[Record]:
        stmt = (
            select(Record)
            .where(Record.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def _critical(checkout_id: str, record_id: Optional[int], reason: str) -> None:
        logger.error(f"CRITICAL: checkout {checkout_id}, record {record_id}: {reason}")
        raise CriticalInvariantError(
            f"Settlement of checkout {checkout_id} aborted: {reason}",
            checkout_id=checkout_id,
            record_id=record_id,
        )

    def _report_failure(self, checkout_id: str, error: Exception, actions: List[RemoteAction]) -> None:
        logger.error(f"Settlement of checkout {checkout_id} FAILED: {error}")
        performed = [a for a in actions if a.succeeded]
        if performed:
            logger.error(
                f"Checkout {checkout_id} rolled back after Discogs changes were made; "
                f"manual follow-up required: "
                + ", ".join(f"{a.action} listing {a.listing_id} (record {a.record_id})" for a in performed)
            )

    async def _send_confirmation(self, order_id: int) -> None:
        if self.notifier is None:
            return
        try:
            order = (
                await self.db.execute(
                    select(Order).where(Order.id == order_id).options(selectinload(Order.items))
                )
            ).scalar_one()
            await self.db.commit()
            await self.notifier.send_order_confirmation(order)
        except Exception as e:
            logger.error(f"Order {order_id} confirmation email failed: {e}", exc_info=True)
