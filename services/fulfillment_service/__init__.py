"""
Fulfillment Service

Operation surface of the engine: structured results, deadlines, and the
wiring of orders, tables, stock and pricing.
"""

from .fulfillment_service import FulfillmentService
from .memory_store import MemoryStore
from .models import ErrorDetail, OperationResult
from .factory import create_fulfillment_service

__all__ = [
    "FulfillmentService",
    "MemoryStore",
    "ErrorDetail",
    "OperationResult",
    "create_fulfillment_service",
]
