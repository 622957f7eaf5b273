"""
Event Envelope and Event Bus Contract

Services publish domain events through any object satisfying
EventBusProtocol. Publishing is fire-and-forget: publishers log failures
and never raise into the operation that triggered them.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published by the engine"""

    # Order Events
    ORDER_CREATED = "order.created"
    ORDER_ITEMS_MODIFIED = "order.items_modified"
    ORDER_STATE_CHANGED = "order.state_changed"
    ORDER_CANCELED = "order.canceled"
    ORDER_SPLIT = "order.split"
    ORDERS_CONSOLIDATED = "order.consolidated"

    # Table Events
    TABLE_ASSIGNED = "table.assigned"
    TABLE_RELEASED = "table.released"
    TABLE_STATE_CHANGED = "table.state_changed"
    TABLE_READY_FOR_BILLING = "table.ready_for_billing"

    # Stock Events
    STOCK_HELD = "stock.held"
    STOCK_CONFIRMED = "stock.confirmed"
    STOCK_RELEASED = "stock.released"
    STOCK_LOW = "stock.low"


class ServiceSource(Enum):
    """Publishing component"""

    ORDER_SERVICE = "order_service"
    TABLE_SERVICE = "table_service"
    STOCK_SERVICE = "stock_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...


async def publish(
    event_bus: Optional[EventBusProtocol],
    event_type: EventType,
    source: ServiceSource,
    data: Dict[str, Any],
    subject: Optional[str] = None,
) -> bool:
    """Publish an event, logging instead of raising on failure"""
    if not event_bus:
        logger.debug(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(event_type=event_type, source=source, data=data, subject=subject)
        await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} event ({subject or 'no subject'})")
        return True
    except Exception as e:
        logger.error(f"Failed to publish {event_type.value} event: {e}")
        return False
