# recordshop/models/order.py
from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, Enum, ForeignKey, CheckConstraint, event,
)
from sqlalchemy.orm import relationship

from recordshop.database import Base
from recordshop.core.enums import OrderStatus
from recordshop.core.utils import utc_now


class Order(Base):
    """
    A settled purchase. ``checkout_id`` (the Stripe Checkout session id) is the
    idempotency key: at most one order exists per checkout.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)  # None for guest checkouts
    checkout_id = Column(String, unique=True, nullable=False)
    payment_intent_id = Column(String, unique=True, nullable=True)
    status = Column(
        Enum(OrderStatus, name="orderstatus", native_enum=False, length=16),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    total_amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), nullable=False, default="usd")
    customer_name = Column(String)
    customer_email = Column(String)
    shipping_address = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")

    def __repr__(self):
        return f"<Order(id={self.id}, checkout_id='{self.checkout_id}', status={self.status})>"


class OrderItem(Base):
    """Immutable snapshot of a purchased record, taken at settlement time."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    record_id = Column(Integer, ForeignKey("records.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String, nullable=False)
    artist = Column(String, nullable=False)
    price = Column(Integer, nullable=False)  # unit price, minor units
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    order = relationship("Order", back_populates="items")
    record = relationship("Record", back_populates="order_items")

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, record_id={self.record_id}, qty={self.quantity})>"


class ImmutableOrderItemError(RuntimeError):
    pass


@event.listens_for(OrderItem, "before_update")
def _reject_order_item_update(mapper, connection, target):
    raise ImmutableOrderItemError(f"OrderItem {target.id} is an immutable snapshot")
