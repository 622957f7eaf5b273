"""
Stock Service Event Models

Pydantic models for events published by the stock ledger
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StockEventType(str, Enum):
    """
    Events published by stock_service.

    Subjects: stock.>
    """
    STOCK_HELD = "stock.held"
    STOCK_CONFIRMED = "stock.confirmed"
    STOCK_RELEASED = "stock.released"
    STOCK_LOW = "stock.low"


class HeldItem(BaseModel):
    """Item reservation details"""
    product_id: str
    quantity: int


class StockHeldEvent(BaseModel):
    """Published when a hold is created"""
    reservation_id: str
    order_id: Optional[str] = None
    items: List[HeldItem]
    expires_at: datetime
    timestamp: datetime = Field(default_factory=_now)


class StockConfirmedEvent(BaseModel):
    """Published when a hold is converted into a real decrement"""
    reservation_id: str
    order_id: Optional[str] = None
    items: List[HeldItem]
    timestamp: datetime = Field(default_factory=_now)


class StockReleasedEvent(BaseModel):
    """Published when a hold is discarded or a confirmation is undone"""
    reservation_id: str
    order_id: Optional[str] = None
    items: List[HeldItem]
    restored: bool = False
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class StockLowEvent(BaseModel):
    """Published when a confirmation leaves a product at or under its reorder threshold"""
    product_id: str
    available: int
    reorder_threshold: int
    timestamp: datetime = Field(default_factory=_now)
