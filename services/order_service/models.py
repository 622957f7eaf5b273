"""
Order Service Data Models

Orders, order lines, catalog snapshots, requests and operation results.
Entities reference each other by id only.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, computed_field

from core.errors import Violation
from services.pricing_service.models import AppliedDiscount, PricingResult


# ====================
# Enums
# ====================

class OrderState(str, Enum):
    """Order lifecycle state"""
    PENDING = "Pending"
    IN_PREPARATION = "InPreparation"
    READY = "Ready"
    DELIVERED = "Delivered"
    INVOICED = "Invoiced"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderState.INVOICED, OrderState.CANCELLED)


class OrderType(str, Enum):
    """How the order is served"""
    DINE_IN = "dine_in"
    TAKEOUT = "takeout"
    DELIVERY = "delivery"


PREPARATION_PROGRESS: Dict[OrderState, int] = {
    OrderState.PENDING: 0,
    OrderState.IN_PREPARATION: 50,
    OrderState.READY: 80,
    OrderState.DELIVERED: 100,
    OrderState.INVOICED: 100,
    OrderState.CANCELLED: 0,
}


# ====================
# Line targets
# ====================

class ProductTarget(BaseModel):
    kind: Literal["product"] = "product"
    product_id: str


class ComboTarget(BaseModel):
    kind: Literal["combo"] = "combo"
    combo_id: str


LineTarget = Annotated[Union[ProductTarget, ComboTarget], Field(discriminator="kind")]


# ====================
# Catalog snapshots
# ====================

class CatalogProduct(BaseModel):
    """Product metadata returned by the catalog"""
    product_id: str
    name: str
    price: Decimal
    category: Optional[str] = None
    available: bool = True
    preparation_minutes: Optional[int] = None


class ComboComponent(BaseModel):
    """Product and quantity included in one unit of a combo"""
    product_id: str
    quantity: int = Field(default=1, ge=1)


class CatalogCombo(BaseModel):
    """Combo metadata returned by the catalog"""
    combo_id: str
    name: str
    price: Decimal
    category: Optional[str] = None
    available: bool = True
    preparation_minutes: Optional[int] = None
    components: List[ComboComponent] = Field(default_factory=list)


# ====================
# Core entities
# ====================

class OrderItem(BaseModel):
    """
    Requested line.

    Ranges are checked by the order service's validation pass, so every
    violation across all items is reported at once.
    """
    target: LineTarget
    quantity: int
    discount: Decimal = Decimal("0")
    note: Optional[str] = None


class OrderLine(BaseModel):
    """Line inside an order; unit price is a snapshot taken at order time"""
    line_id: str
    target: LineTarget
    name: str
    category: Optional[str] = None
    quantity: int = Field(..., ge=1, le=99)
    unit_price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    subtotal: Decimal
    note: Optional[str] = None
    preparation_minutes: Optional[int] = None
    components: List[ComboComponent] = Field(default_factory=list)


class StateChange(BaseModel):
    """Audit entry for a lifecycle change"""
    from_state: Optional[OrderState] = None
    to_state: OrderState
    at: datetime
    staff_id: Optional[str] = None
    reason: Optional[str] = None


class Order(BaseModel):
    """Customer order (comanda)"""
    order_id: str
    number: str
    order_type: OrderType = OrderType.DINE_IN
    table_id: Optional[str] = None
    customer_id: Optional[str] = None
    staff_id: str
    party_size: Optional[int] = None
    state: OrderState = OrderState.PENDING
    lines: List[OrderLine] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    applied_discounts: List[AppliedDiscount] = Field(default_factory=list)
    notes: Optional[str] = None
    estimated_preparation_minutes: int = 0
    reservation_id: Optional[str] = None
    split_from: Optional[str] = None
    consolidated_from: List[str] = Field(default_factory=list)
    history: List[StateChange] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = 0

    @computed_field
    @property
    def preparation_progress(self) -> int:
        return PREPARATION_PROGRESS[self.state]

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal


# ====================
# Requests
# ====================

class CreateOrderRequest(BaseModel):
    """Order submission"""
    items: List[OrderItem] = Field(default_factory=list)
    order_type: OrderType = OrderType.DINE_IN
    table_id: Optional[str] = None
    party_size: Optional[int] = None
    location_preference: Optional[str] = None
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    notes: Optional[str] = None


class SplitLineSelection(BaseModel):
    """Quantity of a source line moved into a split part; None takes the whole line"""
    line_id: str
    quantity: Optional[int] = None


class SplitPart(BaseModel):
    lines: List[SplitLineSelection] = Field(default_factory=list)


# ====================
# Results
# ====================

class StateChangeResult(BaseModel):
    order: Order
    previous_state: OrderState
    preparation_progress: int


class CancellationResult(BaseModel):
    order: Order
    refund_amount: Decimal
    reason: str


class SplitResult(BaseModel):
    source_order: Order
    orders: List[Order]


class ConsolidationResult(BaseModel):
    order: Order
    source_orders: List[Order]


class OrderPreview(BaseModel):
    """Dry run of order creation: validation, pricing and stock, no side effects"""
    valid: bool
    violations: List[Violation] = Field(default_factory=list)
    totals: Optional[PricingResult] = None
    estimated_preparation_minutes: Optional[int] = None
    low_stock_warnings: List[str] = Field(default_factory=list)
