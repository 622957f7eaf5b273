"""
Table Service

Table state machine (Free, Occupied, Reserved, Maintenance), best-fit
assignment, wait estimates and rotation alerts.
"""

from .models import (
    ActiveOrderRef,
    AlertUrgency,
    AssignmentResult,
    OccupancyRecord,
    RotationAlert,
    Table,
    TableCandidate,
    TableState,
)
from .protocols import TableStoreProtocol
from .scoring import rank_candidates, score_table
from .table_service import TableService

__all__ = [
    "ActiveOrderRef",
    "AlertUrgency",
    "AssignmentResult",
    "OccupancyRecord",
    "RotationAlert",
    "Table",
    "TableCandidate",
    "TableState",
    "TableStoreProtocol",
    "rank_candidates",
    "score_table",
    "TableService",
]
