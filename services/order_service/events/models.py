"""
Order Service Event Models

Pydantic models for events published by order service
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderEventType(str, Enum):
    """
    Events published by order_service.

    Subjects: order.>
    """
    ORDER_CREATED = "order.created"
    ORDER_ITEMS_MODIFIED = "order.items_modified"
    ORDER_STATE_CHANGED = "order.state_changed"
    ORDER_CANCELED = "order.canceled"
    ORDER_SPLIT = "order.split"
    ORDERS_CONSOLIDATED = "order.consolidated"


class OrderCreatedEvent(BaseModel):
    order_id: str
    number: str
    order_type: str
    table_id: Optional[str] = None
    staff_id: str
    line_count: int
    total: Decimal
    estimated_preparation_minutes: int
    timestamp: datetime = Field(default_factory=_now)


class OrderItemsModifiedEvent(BaseModel):
    order_id: str
    number: str
    line_count: int
    previous_total: Decimal
    total: Decimal
    timestamp: datetime = Field(default_factory=_now)


class OrderStateChangedEvent(BaseModel):
    order_id: str
    number: str
    table_id: Optional[str] = None
    old_state: str
    new_state: str
    staff_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class OrderCanceledEvent(BaseModel):
    order_id: str
    number: str
    previous_state: str
    reason: str
    refund_amount: Decimal
    timestamp: datetime = Field(default_factory=_now)


class OrderSplitEvent(BaseModel):
    source_order_id: str
    order_ids: List[str]
    timestamp: datetime = Field(default_factory=_now)


class OrdersConsolidatedEvent(BaseModel):
    order_id: str
    source_order_ids: List[str]
    total: Decimal
    timestamp: datetime = Field(default_factory=_now)
