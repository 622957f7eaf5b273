"""
Table Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import List, Optional, Protocol, runtime_checkable

from .models import ActiveOrderRef, OccupancyRecord, Table


@runtime_checkable
class TableStoreProtocol(Protocol):
    """
    Interface for the table side of the durable store.

    save_table is a compare-and-swap on Table.version: it raises
    ConcurrentModificationError when the stored version differs and returns
    the saved table with its version incremented.
    """

    async def load_table(self, table_id: str) -> Optional[Table]:
        """Get table by ID"""
        ...

    async def save_table(self, table: Table) -> Table:
        """Persist a table if its version is current"""
        ...

    async def list_tables(self) -> List[Table]:
        """List all tables"""
        ...

    async def list_active_orders_for_table(self, table_id: str) -> List[ActiveOrderRef]:
        """Non-terminal orders attached to a table"""
        ...

    async def add_occupancy_record(self, record: OccupancyRecord) -> None:
        """Append a completed occupancy period"""
        ...

    async def list_occupancy_records(self) -> List[OccupancyRecord]:
        """All recorded occupancy periods"""
        ...
