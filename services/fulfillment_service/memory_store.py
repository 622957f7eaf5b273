"""
In-memory store

Implements the order, table and inventory store contracts for tests and
local runs. Every read and write copies, so callers never share state with
the store. Saves are compare-and-swap on the entity version.
"""

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from core.errors import ConcurrentModificationError, NotFoundError, StockExhaustedError
from services.order_service.models import Order, OrderState
from services.stock_service.models import InventoryRecord
from services.table_service.models import ActiveOrderRef, OccupancyRecord, Table, TableState

logger = logging.getLogger(__name__)


class MemoryStore:
    """Durable-store stand-in keyed by id"""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._tables: Dict[str, Table] = {}
        self._inventory: Dict[str, InventoryRecord] = {}
        self._sequences: Dict[date, int] = {}
        self._occupancy: List[OccupancyRecord] = []

    # ====================
    # Orders
    # ====================

    async def load_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def save_order(self, order: Order) -> Order:
        current = self._orders.get(order.order_id)
        expected = current.version if current else 0
        if order.version != expected:
            raise ConcurrentModificationError(
                f"Order {order.order_id} was modified concurrently "
                f"(version {order.version}, stored {expected})",
                fields=["version"],
            )
        saved = order.model_copy(update={"version": order.version + 1}, deep=True)
        self._orders[order.order_id] = saved
        return saved.model_copy(deep=True)

    async def list_orders_for_table(self, table_id: str) -> List[Order]:
        return [o.model_copy(deep=True) for o in self._orders.values() if o.table_id == table_id]

    async def next_order_sequence(self, day: date) -> int:
        self._sequences[day] = self._sequences.get(day, 0) + 1
        return self._sequences[day]

    # ====================
    # Tables
    # ====================

    async def load_table(self, table_id: str) -> Optional[Table]:
        table = self._tables.get(table_id)
        return table.model_copy(deep=True) if table else None

    async def save_table(self, table: Table) -> Table:
        current = self._tables.get(table.table_id)
        expected = current.version if current else 0
        if table.version != expected:
            raise ConcurrentModificationError(
                f"Table {table.table_id} was modified concurrently "
                f"(version {table.version}, stored {expected})",
                fields=["version"],
            )
        saved = table.model_copy(update={"version": table.version + 1}, deep=True)
        self._tables[table.table_id] = saved
        return saved.model_copy(deep=True)

    async def list_tables(self) -> List[Table]:
        return [t.model_copy(deep=True) for t in self._tables.values()]

    async def list_active_orders_for_table(self, table_id: str) -> List[ActiveOrderRef]:
        return [
            ActiveOrderRef(
                order_id=o.order_id,
                state=o.state.value,
                delivered=o.state == OrderState.DELIVERED,
                estimated_preparation_minutes=o.estimated_preparation_minutes,
            )
            for o in self._orders.values()
            if o.table_id == table_id and not o.state.is_terminal
        ]

    async def add_occupancy_record(self, record: OccupancyRecord) -> None:
        self._occupancy.append(record.model_copy())

    async def list_occupancy_records(self) -> List[OccupancyRecord]:
        return [r.model_copy() for r in self._occupancy]

    # ====================
    # Inventory
    # ====================

    async def load_inventory(self, product_id: str) -> Optional[InventoryRecord]:
        record = self._inventory.get(product_id)
        return record.model_copy() if record else None

    async def adjust_inventory(self, product_id: str, delta: int) -> InventoryRecord:
        record = self._inventory.get(product_id)
        if record is None:
            raise NotFoundError(f"No inventory record for {product_id}", fields=["product_id"])
        available = record.available + delta
        if available < 0:
            raise StockExhaustedError(
                f"Adjusting {product_id} by {delta} would leave {available} units",
                product_ids=[product_id],
            )
        updated = record.model_copy(update={"available": available, "updated_at": datetime.now(timezone.utc)})
        self._inventory[product_id] = updated
        return updated.model_copy()

    # ====================
    # Seeding
    # ====================

    def seed_table(
        self,
        table_id: str,
        number: int,
        capacity: int,
        location: Optional[str] = None,
        state: TableState = TableState.FREE,
        occupied_since: Optional[datetime] = None,
    ) -> Table:
        table = Table(
            table_id=table_id,
            number=number,
            capacity=capacity,
            location=location,
            state=state,
            occupied_since=occupied_since,
        )
        self._tables[table_id] = table
        return table.model_copy()

    def seed_inventory(self, product_id: str, available: int, reorder_threshold: int = 5) -> InventoryRecord:
        record = InventoryRecord(
            product_id=product_id,
            available=available,
            reorder_threshold=reorder_threshold,
            updated_at=datetime.now(timezone.utc),
        )
        self._inventory[product_id] = record
        return record.model_copy()

    def seed_order(self, order: Order) -> Order:
        self._orders[order.order_id] = order.model_copy(deep=True)
        return order
