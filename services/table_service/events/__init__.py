"""
Table Service Events Module

Exports all event-related functionality for table service
"""

from .models import (
    TableEventType,
    TableAssignedEvent,
    TableReleasedEvent,
    TableStateChangedEvent,
    TableReadyForBillingEvent,
)

from .publishers import (
    publish_table_assigned,
    publish_table_released,
    publish_table_state_changed,
    publish_table_ready_for_billing,
)

__all__ = [
    # Event Types
    "TableEventType",
    # Event Models
    "TableAssignedEvent",
    "TableReleasedEvent",
    "TableStateChangedEvent",
    "TableReadyForBillingEvent",
    # Publishers
    "publish_table_assigned",
    "publish_table_released",
    "publish_table_state_changed",
    "publish_table_ready_for_billing",
]
