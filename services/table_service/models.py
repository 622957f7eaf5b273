"""
Table Service Data Models

Tables, assignment results, rotation alerts and occupancy history.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TableState(str, Enum):
    """Table lifecycle state"""
    FREE = "Free"
    OCCUPIED = "Occupied"
    RESERVED = "Reserved"
    MAINTENANCE = "Maintenance"


class AlertUrgency(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class Table(BaseModel):
    """Physical seating unit"""
    table_id: str
    number: int = Field(..., ge=1)
    capacity: int = Field(..., ge=1)
    location: Optional[str] = None
    state: TableState = TableState.FREE
    state_changed_at: Optional[datetime] = None
    occupied_since: Optional[datetime] = None
    version: int = 0


class ActiveOrderRef(BaseModel):
    """Non-terminal order attached to a table"""
    order_id: str
    state: str
    delivered: bool = False
    estimated_preparation_minutes: int = 0


class TableCandidate(BaseModel):
    """Scored assignment candidate"""
    table_id: str
    number: int
    capacity: int
    location: Optional[str] = None
    score: int


class AssignmentResult(BaseModel):
    """Outcome of a best-fit search"""
    assigned: bool
    table: Optional[Table] = None
    score: Optional[int] = None
    alternatives: List[TableCandidate] = Field(default_factory=list)
    estimated_wait_minutes: Optional[int] = None
    message: str


class RotationAlert(BaseModel):
    """Advisory alert for a table occupied past its rotation threshold"""
    table_id: str
    number: int
    capacity: int
    location: Optional[str] = None
    occupied_since: datetime
    occupied_minutes: int
    threshold_minutes: int
    urgency: AlertUrgency
    recommendation: str


class OccupancyRecord(BaseModel):
    """Completed occupancy period of a table"""
    table_id: str
    capacity: int
    started_at: datetime
    ended_at: datetime
    duration_minutes: float = Field(..., ge=0)
