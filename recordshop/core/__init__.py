"""
Core module exports.
"""
from .enums import (
    RecordStatus,
    OrderStatus,
    SettlementState,
    SyncMode,
)
