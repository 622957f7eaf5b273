"""
Event bus notification sink

Adapts an event bus to the notify(order_id, new_state) contract so kitchen
displays and reporting can follow order progress.
"""

import logging

from core.events import Event, EventType, ServiceSource

from ..models import OrderState

logger = logging.getLogger(__name__)


class EventBusNotificationSink:
    """Notification sink that publishes order.state_changed envelopes"""

    def __init__(self, event_bus):
        self.event_bus = event_bus

    async def notify(self, order_id: str, new_state: OrderState) -> None:
        event = Event(
            event_type=EventType.ORDER_STATE_CHANGED,
            source=ServiceSource.ORDER_SERVICE,
            data={"order_id": order_id, "new_state": OrderState(new_state).value},
            subject=order_id,
            metadata={"channel": "notification"},
        )
        await self.event_bus.publish_event(event)
        logger.debug(f"Notification sent for order {order_id}: {new_state}")
