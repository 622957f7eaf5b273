"""
Order Service Events Module

Exports all event-related functionality for order service
"""

from .models import (
    OrderEventType,
    OrderCreatedEvent,
    OrderItemsModifiedEvent,
    OrderStateChangedEvent,
    OrderCanceledEvent,
    OrderSplitEvent,
    OrdersConsolidatedEvent,
)

from .publishers import (
    publish_order_created,
    publish_order_items_modified,
    publish_order_state_changed,
    publish_order_canceled,
    publish_order_split,
    publish_orders_consolidated,
)

from .notification_sink import EventBusNotificationSink

__all__ = [
    # Event Types
    "OrderEventType",
    # Event Models
    "OrderCreatedEvent",
    "OrderItemsModifiedEvent",
    "OrderStateChangedEvent",
    "OrderCanceledEvent",
    "OrderSplitEvent",
    "OrdersConsolidatedEvent",
    # Publishers
    "publish_order_created",
    "publish_order_items_modified",
    "publish_order_state_changed",
    "publish_order_canceled",
    "publish_order_split",
    "publish_orders_consolidated",
    # Notification
    "EventBusNotificationSink",
]
