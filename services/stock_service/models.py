"""
Stock Service Data Models

Inventory records are owned by the durable store; reservations are
ephemeral holds that bridge "validated available" and "confirmed consumed".
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ReservationStatus(str, Enum):
    """Reservation status"""
    HELD = "held"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    EXPIRED = "expired"


class StockLevel(str, Enum):
    """Stock level label derived from the reorder threshold"""
    OUT_OF_STOCK = "out_of_stock"
    LOW = "low"
    MODERATE = "moderate"
    SUFFICIENT = "sufficient"


class InventoryRecord(BaseModel):
    """Per-product stock record"""
    product_id: str
    available: int = Field(default=0, ge=0)
    reorder_threshold: int = Field(default=5, ge=0)
    updated_at: Optional[datetime] = None


class StockItem(BaseModel):
    """Product and quantity pair inside a reservation"""
    product_id: str
    quantity: int = Field(..., gt=0)


class StockReservation(BaseModel):
    """Temporary hold against inventory"""
    reservation_id: str
    order_id: Optional[str] = None
    items: List[StockItem]
    status: ReservationStatus = ReservationStatus.HELD
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        """An unconfirmed hold past its TTL is void"""
        return self.status == ReservationStatus.HELD and now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        return self.status == ReservationStatus.HELD and now < self.expires_at


class AvailabilityResult(BaseModel):
    """Read-only availability answer for one product"""
    product_id: str
    requested: int
    available: bool
    available_quantity: int
    on_hand: int
    held: int
    stock_level: StockLevel
    low_stock: bool = False
