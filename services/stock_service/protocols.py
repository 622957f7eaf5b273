"""
Stock Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Optional, Protocol, runtime_checkable

from .models import InventoryRecord


@runtime_checkable
class InventoryStoreProtocol(Protocol):
    """
    Interface for the inventory side of the durable store.

    adjust_inventory must be an atomic single-row read-modify-write.
    """

    async def load_inventory(self, product_id: str) -> Optional[InventoryRecord]:
        """Get the inventory record for a product"""
        ...

    async def adjust_inventory(self, product_id: str, delta: int) -> InventoryRecord:
        """Add delta (may be negative) to a product's available quantity"""
        ...
