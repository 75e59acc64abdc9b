from .record import Record
from .cart import Cart, CartItem
from .order import Order, OrderItem
from .webhook import WebhookEvent
from .sync_run import SyncRun

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Record',
    'Cart',
    'CartItem',
    'Order',
    'OrderItem',
    'WebhookEvent',
    'SyncRun',
]
