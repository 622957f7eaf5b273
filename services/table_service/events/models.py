"""
Table Service Event Models

Pydantic models for events published by table service
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TableEventType(str, Enum):
    """
    Events published by table_service.

    Subjects: table.>
    """
    TABLE_ASSIGNED = "table.assigned"
    TABLE_RELEASED = "table.released"
    TABLE_STATE_CHANGED = "table.state_changed"
    TABLE_READY_FOR_BILLING = "table.ready_for_billing"


class TableAssignedEvent(BaseModel):
    """Published when a best-fit search seats a party"""
    table_id: str
    number: int
    party_size: int
    score: int
    timestamp: datetime = Field(default_factory=_now)


class TableReleasedEvent(BaseModel):
    """Published when an occupied table becomes free"""
    table_id: str
    number: int
    occupied_minutes: Optional[float] = None
    timestamp: datetime = Field(default_factory=_now)


class TableStateChangedEvent(BaseModel):
    """Published on every table state change"""
    table_id: str
    number: int
    old_state: str
    new_state: str
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class TableReadyForBillingEvent(BaseModel):
    """Published when every active order on a table has been delivered"""
    table_id: str
    order_ids: List[str]
    timestamp: datetime = Field(default_factory=_now)
