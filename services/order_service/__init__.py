"""
Order Service

Order lifecycle manager: state machine, item mutation rules, totals,
cancellation refunds, splits and consolidations.
"""

from .models import (
    CancellationResult,
    CatalogCombo,
    CatalogProduct,
    ComboComponent,
    ComboTarget,
    ConsolidationResult,
    CreateOrderRequest,
    LineTarget,
    Order,
    OrderItem,
    OrderLine,
    OrderPreview,
    OrderState,
    OrderType,
    PREPARATION_PROGRESS,
    ProductTarget,
    SplitLineSelection,
    SplitPart,
    SplitResult,
    StateChange,
    StateChangeResult,
)
from .protocols import CatalogClientProtocol, NotificationSinkProtocol, OrderStoreProtocol
from .order_service import OrderService

__all__ = [
    "CancellationResult",
    "CatalogCombo",
    "CatalogProduct",
    "ComboComponent",
    "ComboTarget",
    "ConsolidationResult",
    "CreateOrderRequest",
    "LineTarget",
    "Order",
    "OrderItem",
    "OrderLine",
    "OrderPreview",
    "OrderState",
    "OrderType",
    "PREPARATION_PROGRESS",
    "ProductTarget",
    "SplitLineSelection",
    "SplitPart",
    "SplitResult",
    "StateChange",
    "StateChangeResult",
    "CatalogClientProtocol",
    "NotificationSinkProtocol",
    "OrderStoreProtocol",
    "OrderService",
]
