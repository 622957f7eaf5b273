"""
Stock Service

Stock reservation ledger: all-or-nothing holds with a TTL, confirmation into
real inventory decrements, and release/restore on cancellation.
"""

from .models import (
    AvailabilityResult,
    InventoryRecord,
    ReservationStatus,
    StockItem,
    StockLevel,
    StockReservation,
)
from .protocols import InventoryStoreProtocol
from .stock_ledger import StockLedger, aggregate_items

__all__ = [
    "AvailabilityResult",
    "InventoryRecord",
    "ReservationStatus",
    "StockItem",
    "StockLevel",
    "StockReservation",
    "InventoryStoreProtocol",
    "StockLedger",
    "aggregate_items",
]
