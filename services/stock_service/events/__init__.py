"""
Stock Service Events Module

Exports all event-related functionality for stock service
"""

from .models import (
    StockEventType,
    HeldItem,
    StockHeldEvent,
    StockConfirmedEvent,
    StockReleasedEvent,
    StockLowEvent,
)

from .publishers import (
    publish_stock_held,
    publish_stock_confirmed,
    publish_stock_released,
    publish_stock_low,
)

__all__ = [
    # Event Types
    "StockEventType",
    # Event Models
    "HeldItem",
    "StockHeldEvent",
    "StockConfirmedEvent",
    "StockReleasedEvent",
    "StockLowEvent",
    # Publishers
    "publish_stock_held",
    "publish_stock_confirmed",
    "publish_stock_released",
    "publish_stock_low",
]
