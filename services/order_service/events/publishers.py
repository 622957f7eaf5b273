"""
Order Service Event Publishers

Functions to publish events from order service
"""

import logging
from decimal import Decimal
from typing import List, Optional

from core.events import EventType, ServiceSource, publish

from ..models import Order, OrderState
from .models import (
    OrderCanceledEvent,
    OrderCreatedEvent,
    OrderItemsModifiedEvent,
    OrdersConsolidatedEvent,
    OrderSplitEvent,
    OrderStateChangedEvent,
)

logger = logging.getLogger(__name__)


async def publish_order_created(event_bus, order: Order) -> bool:
    """Publish order.created event"""
    event_data = OrderCreatedEvent(
        order_id=order.order_id,
        number=order.number,
        order_type=order.order_type.value,
        table_id=order.table_id,
        staff_id=order.staff_id,
        line_count=len(order.lines),
        total=order.total,
        estimated_preparation_minutes=order.estimated_preparation_minutes,
    )
    return await publish(
        event_bus,
        EventType.ORDER_CREATED,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=order.order_id,
    )


async def publish_order_items_modified(event_bus, order: Order, previous_total: Decimal) -> bool:
    """Publish order.items_modified event"""
    event_data = OrderItemsModifiedEvent(
        order_id=order.order_id,
        number=order.number,
        line_count=len(order.lines),
        previous_total=previous_total,
        total=order.total,
    )
    return await publish(
        event_bus,
        EventType.ORDER_ITEMS_MODIFIED,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=order.order_id,
    )


async def publish_order_state_changed(
    event_bus,
    order: Order,
    old_state: OrderState,
    staff_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> bool:
    """Publish order.state_changed event"""
    event_data = OrderStateChangedEvent(
        order_id=order.order_id,
        number=order.number,
        table_id=order.table_id,
        old_state=old_state.value,
        new_state=order.state.value,
        staff_id=staff_id,
        reason=reason,
    )
    return await publish(
        event_bus,
        EventType.ORDER_STATE_CHANGED,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=order.order_id,
    )


async def publish_order_canceled(
    event_bus,
    order: Order,
    previous_state: OrderState,
    reason: str,
    refund_amount: Decimal,
) -> bool:
    """Publish order.canceled event"""
    event_data = OrderCanceledEvent(
        order_id=order.order_id,
        number=order.number,
        previous_state=previous_state.value,
        reason=reason,
        refund_amount=refund_amount,
    )
    return await publish(
        event_bus,
        EventType.ORDER_CANCELED,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=order.order_id,
    )


async def publish_order_split(event_bus, source: Order, orders: List[Order]) -> bool:
    """Publish order.split event"""
    event_data = OrderSplitEvent(
        source_order_id=source.order_id,
        order_ids=[o.order_id for o in orders],
    )
    return await publish(
        event_bus,
        EventType.ORDER_SPLIT,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=source.order_id,
    )


async def publish_orders_consolidated(event_bus, order: Order) -> bool:
    """Publish order.consolidated event"""
    event_data = OrdersConsolidatedEvent(
        order_id=order.order_id,
        source_order_ids=order.consolidated_from,
        total=order.total,
    )
    return await publish(
        event_bus,
        EventType.ORDERS_CONSOLIDATED,
        ServiceSource.ORDER_SERVICE,
        event_data.model_dump(mode="json"),
        subject=order.order_id,
    )
