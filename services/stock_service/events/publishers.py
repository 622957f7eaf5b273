"""
Stock Service Event Publishers

Functions to publish events from the stock ledger
"""

import logging
from typing import List, Optional

from core.events import EventType, ServiceSource, publish

from ..models import StockItem, StockReservation
from .models import (
    HeldItem,
    StockConfirmedEvent,
    StockHeldEvent,
    StockLowEvent,
    StockReleasedEvent,
)

logger = logging.getLogger(__name__)


def _items(items: List[StockItem]) -> List[HeldItem]:
    return [HeldItem(product_id=i.product_id, quantity=i.quantity) for i in items]


async def publish_stock_held(event_bus, reservation: StockReservation) -> bool:
    """Publish stock.held event"""
    event_data = StockHeldEvent(
        reservation_id=reservation.reservation_id,
        order_id=reservation.order_id,
        items=_items(reservation.items),
        expires_at=reservation.expires_at,
    )
    return await publish(
        event_bus,
        EventType.STOCK_HELD,
        ServiceSource.STOCK_SERVICE,
        event_data.model_dump(mode="json"),
        subject=reservation.reservation_id,
    )


async def publish_stock_confirmed(event_bus, reservation: StockReservation) -> bool:
    """Publish stock.confirmed event"""
    event_data = StockConfirmedEvent(
        reservation_id=reservation.reservation_id,
        order_id=reservation.order_id,
        items=_items(reservation.items),
    )
    return await publish(
        event_bus,
        EventType.STOCK_CONFIRMED,
        ServiceSource.STOCK_SERVICE,
        event_data.model_dump(mode="json"),
        subject=reservation.reservation_id,
    )


async def publish_stock_released(
    event_bus,
    reservation: StockReservation,
    restored: bool,
    reason: Optional[str] = None,
) -> bool:
    """Publish stock.released event"""
    event_data = StockReleasedEvent(
        reservation_id=reservation.reservation_id,
        order_id=reservation.order_id,
        items=_items(reservation.items),
        restored=restored,
        reason=reason,
    )
    return await publish(
        event_bus,
        EventType.STOCK_RELEASED,
        ServiceSource.STOCK_SERVICE,
        event_data.model_dump(mode="json"),
        subject=reservation.reservation_id,
    )


async def publish_stock_low(
    event_bus,
    product_id: str,
    available: int,
    reorder_threshold: int,
) -> bool:
    """Publish stock.low event"""
    event_data = StockLowEvent(
        product_id=product_id,
        available=available,
        reorder_threshold=reorder_threshold,
    )
    return await publish(
        event_bus,
        EventType.STOCK_LOW,
        ServiceSource.STOCK_SERVICE,
        event_data.model_dump(mode="json"),
        subject=product_id,
    )
