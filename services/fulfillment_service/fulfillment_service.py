"""
Fulfillment Service

The operation surface offered to callers such as an HTTP layer. Each
operation runs under a deadline and returns an OperationResult: engine
errors and timeouts become structured error values, anything else (storage
I/O, programming errors) propagates unchanged.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.config import EngineConfig
from core.errors import EngineError, OperationTimeoutError, ValidationError, Violation
from services.order_service import (
    CreateOrderRequest,
    OrderItem,
    OrderService,
    OrderState,
    SplitPart,
)
from services.pricing_service import PricingEngine, PricingLine
from services.stock_service import StockItem, StockLedger
from services.table_service import TableService, TableState

from .models import ErrorDetail, OperationResult

logger = logging.getLogger(__name__)


class FulfillmentService:
    """Order fulfillment and table coordination operations"""

    def __init__(
        self,
        order_service: OrderService,
        table_service: TableService,
        stock_ledger: StockLedger,
        pricing_engine: PricingEngine,
        config: Optional[EngineConfig] = None,
    ):
        self.orders = order_service
        self.tables = table_service
        self.stock = stock_ledger
        self.pricing = pricing_engine
        self.config = config or EngineConfig()

    # ====================
    # Orders
    # ====================

    async def create_order(
        self,
        request: Union[CreateOrderRequest, Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            return await self.orders.create_order(_parse(CreateOrderRequest, request, "request"))
        return await self._run("create_order", run(), timeout, "Order created")

    async def modify_items(
        self,
        order_id: str,
        items: List[Union[OrderItem, Dict[str, Any]]],
        staff_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            parsed = [_parse(OrderItem, item, f"items[{i}]") for i, item in enumerate(items)]
            return await self.orders.modify_items(order_id, parsed, staff_id=staff_id)
        return await self._run("modify_items", run(), timeout, "Order items replaced")

    async def change_state(
        self,
        order_id: str,
        target: Union[OrderState, str],
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            try:
                state = OrderState(target)
            except ValueError:
                raise ValidationError([Violation(field="target", message=f"Unknown order state {target!r}")])
            return await self.orders.change_state(order_id, state, staff_id=staff_id, reason=reason)
        return await self._run("change_state", run(), timeout)

    async def cancel_order(
        self,
        order_id: str,
        reason: str,
        staff_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "cancel_order",
            self.orders.cancel_order(order_id, reason, staff_id=staff_id),
            timeout,
            "Order cancelled",
        )

    async def split_order(
        self,
        order_id: str,
        parts: List[Union[SplitPart, Dict[str, Any]]],
        staff_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            parsed = [_parse(SplitPart, part, f"parts[{i}]") for i, part in enumerate(parts)]
            return await self.orders.split_order(order_id, parsed, staff_id=staff_id)
        return await self._run("split_order", run(), timeout, "Order split")

    async def consolidate_orders(
        self,
        order_ids: List[str],
        table_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "consolidate_orders",
            self.orders.consolidate_orders(order_ids, table_id=table_id, staff_id=staff_id),
            timeout,
            "Orders consolidated",
        )

    async def get_order(self, order_id: str, timeout: Optional[float] = None) -> OperationResult:
        return await self._run("get_order", self.orders.get_order(order_id), timeout)

    async def preview_order(
        self,
        request: Union[CreateOrderRequest, Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            return await self.orders.preview_order(_parse(CreateOrderRequest, request, "request"))
        return await self._run("preview_order", run(), timeout)

    async def renew_reservation(self, order_id: str, timeout: Optional[float] = None) -> OperationResult:
        return await self._run(
            "renew_reservation",
            self.orders.renew_reservation(order_id),
            timeout,
            "Reservation renewed",
        )

    # ====================
    # Tables
    # ====================

    async def assign_best_table(
        self,
        party_size: int,
        location_preference: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        result = await self._run(
            "assign_best_table",
            self.tables.assign_best_table(party_size, location_preference),
            timeout,
        )
        if result.success:
            result.message = result.data.message
        return result

    async def release_table(
        self,
        table_id: str,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "release_table",
            self.tables.release_table(table_id, reason=reason),
            timeout,
            "Table released",
        )

    async def set_table_state(
        self,
        table_id: str,
        target: Union[TableState, str],
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            try:
                state = TableState(target)
            except ValueError:
                raise ValidationError([Violation(field="target", message=f"Unknown table state {target!r}")])
            return await self.tables.set_table_state(table_id, state, reason=reason)
        return await self._run("set_table_state", run(), timeout)

    async def get_rotation_alerts(
        self,
        threshold_minutes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "get_rotation_alerts",
            self.tables.get_rotation_alerts(threshold_minutes),
            timeout,
        )

    # ====================
    # Stock
    # ====================

    async def hold_stock(
        self,
        items: List[Union[StockItem, Dict[str, Any]]],
        order_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            parsed = [_parse(StockItem, item, f"items[{i}]") for i, item in enumerate(items)]
            return await self.stock.hold(parsed, order_id=order_id)
        return await self._run("hold_stock", run(), timeout, "Stock held")

    async def confirm_stock(self, reservation_id: str, timeout: Optional[float] = None) -> OperationResult:
        return await self._run("confirm_stock", self.stock.confirm(reservation_id), timeout, "Stock confirmed")

    async def release_stock(
        self,
        reservation_id: str,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "release_stock",
            self.stock.release(reservation_id, reason=reason),
            timeout,
            "Stock released",
        )

    async def check_availability(
        self,
        product_id: str,
        quantity: int,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        return await self._run(
            "check_availability",
            self.stock.check_availability(product_id, quantity),
            timeout,
        )

    # ====================
    # Pricing
    # ====================

    async def compute_totals(
        self,
        lines: List[Union[PricingLine, Dict[str, Any]]],
        apply_discounts: bool = True,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        async def run():
            parsed = [_parse(PricingLine, line, f"lines[{i}]") for i, line in enumerate(lines)]
            return self.pricing.compute_totals(parsed, apply_discounts=apply_discounts)
        return await self._run("compute_totals", run(), timeout)

    # ====================
    # Lifecycle
    # ====================

    async def flush_notifications(self, timeout: Optional[float] = None) -> None:
        """Drain order notifications before shutdown"""
        await self.orders.flush_notifications(timeout=timeout)

    # ====================
    # Execution
    # ====================

    async def _run(
        self,
        operation: str,
        call: Awaitable[Any],
        timeout: Optional[float],
        message: Optional[str] = None,
    ) -> OperationResult:
        seconds = self.config.default_timeout_seconds if timeout is None else timeout
        try:
            data = await self._within_deadline(operation, call, seconds)
        except EngineError as e:
            logger.warning(f"{operation} failed: {e.kind.value}: {e.message}")
            return OperationResult(success=False, error=ErrorDetail.from_error(e), message=e.message)
        return OperationResult(success=True, data=data, message=message)

    @staticmethod
    async def _within_deadline(operation: str, call: Awaitable[Any], seconds: float) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=seconds)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(
                f"{operation} did not complete within {seconds} seconds",
                details={"operation": operation, "timeout_seconds": seconds},
            )


def _parse(model, value, field: str):
    """Coerce a dict into a model, reporting every schema violation"""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except PydanticValidationError as e:
        violations = [
            Violation(
                field=".".join([field] + [str(part) for part in error["loc"]]),
                message=error["msg"],
            )
            for error in e.errors()
        ]
        raise ValidationError(violations)
