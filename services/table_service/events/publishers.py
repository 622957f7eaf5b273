"""
Table Service Event Publishers

Functions to publish events from table service
"""

import logging
from typing import List, Optional

from core.events import EventType, ServiceSource, publish

from ..models import Table
from .models import (
    TableAssignedEvent,
    TableReadyForBillingEvent,
    TableReleasedEvent,
    TableStateChangedEvent,
)

logger = logging.getLogger(__name__)


async def publish_table_assigned(event_bus, table: Table, party_size: int, score: int) -> bool:
    """Publish table.assigned event"""
    event_data = TableAssignedEvent(
        table_id=table.table_id,
        number=table.number,
        party_size=party_size,
        score=score,
    )
    return await publish(
        event_bus,
        EventType.TABLE_ASSIGNED,
        ServiceSource.TABLE_SERVICE,
        event_data.model_dump(mode="json"),
        subject=table.table_id,
    )


async def publish_table_released(event_bus, table: Table, occupied_minutes: Optional[float] = None) -> bool:
    """Publish table.released event"""
    event_data = TableReleasedEvent(
        table_id=table.table_id,
        number=table.number,
        occupied_minutes=occupied_minutes,
    )
    return await publish(
        event_bus,
        EventType.TABLE_RELEASED,
        ServiceSource.TABLE_SERVICE,
        event_data.model_dump(mode="json"),
        subject=table.table_id,
    )


async def publish_table_state_changed(
    event_bus,
    table: Table,
    old_state: str,
    reason: Optional[str] = None,
) -> bool:
    """Publish table.state_changed event"""
    event_data = TableStateChangedEvent(
        table_id=table.table_id,
        number=table.number,
        old_state=old_state,
        new_state=table.state.value,
        reason=reason,
    )
    return await publish(
        event_bus,
        EventType.TABLE_STATE_CHANGED,
        ServiceSource.TABLE_SERVICE,
        event_data.model_dump(mode="json"),
        subject=table.table_id,
    )


async def publish_table_ready_for_billing(event_bus, table_id: str, order_ids: List[str]) -> bool:
    """Publish table.ready_for_billing event"""
    event_data = TableReadyForBillingEvent(table_id=table_id, order_ids=order_ids)
    return await publish(
        event_bus,
        EventType.TABLE_READY_FOR_BILLING,
        ServiceSource.TABLE_SERVICE,
        event_data.model_dump(mode="json"),
        subject=table_id,
    )
