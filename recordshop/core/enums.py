"""
Shared enums and constants used across the application.
"""

from enum import Enum


class RecordStatus(str, Enum):
    """Lifecycle of a mirrored catalog record"""
    FOR_SALE = "FOR_SALE"
    SOLD = "SOLD"
    DRAFT = "DRAFT"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class SettlementState(str, Enum):
    """States of the order settlement state machine. SETTLED and FAILED are terminal."""
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    SETTLING = "SETTLING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SettlementState.SETTLED, SettlementState.FAILED)


class WebhookProcessingStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


class SyncMode(str, Enum):
    """Reconciliation modes accepted by the CLI, scheduler and admin route"""
    INITIAL = "initial"   # destructive full replace
    DELTA = "delta"       # reconcile in place


class SyncRunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


# Discogs marketplace listing status used when reading and relisting inventory
DISCOGS_FOR_SALE = "For Sale"
