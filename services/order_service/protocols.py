"""
Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from datetime import date
from typing import List, Optional, Protocol, runtime_checkable

from .models import CatalogCombo, CatalogProduct, Order, OrderState


@runtime_checkable
class OrderStoreProtocol(Protocol):
    """
    Interface for the order side of the durable store.

    save_order is a compare-and-swap on Order.version: it raises
    ConcurrentModificationError when the stored version differs and returns
    the saved order with its version incremented.
    """

    async def load_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        ...

    async def save_order(self, order: Order) -> Order:
        """Persist an order if its version is current"""
        ...

    async def list_orders_for_table(self, table_id: str) -> List[Order]:
        """All orders attached to a table"""
        ...

    async def next_order_sequence(self, day: date) -> int:
        """Next business-number sequence for a day, starting at 1, never reused"""
        ...


@runtime_checkable
class CatalogClientProtocol(Protocol):
    """Read-only catalog lookups"""

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        """Get product by ID, None if unknown"""
        ...

    async def get_combo(self, combo_id: str) -> Optional[CatalogCombo]:
        """Get combo by ID, None if unknown"""
        ...


@runtime_checkable
class NotificationSinkProtocol(Protocol):
    """Fire-and-forget receiver of order state changes"""

    async def notify(self, order_id: str, new_state: OrderState) -> None:
        """Receive a state change"""
        ...
