"""
Order Service Business Logic

Owns the order state machine, line mutation rules and total recomputation.
Orchestrates the pricing engine, the stock ledger and the table service.

    Pending -> InPreparation -> Ready -> Delivered -> Invoiced
    Pending, InPreparation -> Cancelled

Transitions of one order are serialized by a per-order lock; the store's
version check rejects writes based on a stale read.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple, Union

from core.clock import Clock, minutes_between, utc_now
from core.config import EngineConfig
from core.errors import (
    IllegalStateError,
    NoTableAvailableError,
    NotFoundError,
    ReservationExpiredError,
    StateTransitionError,
    ValidationError,
    Violation,
)
from services.pricing_service import AppliedDiscount, PricingEngine
from services.stock_service import StockItem, StockLedger, aggregate_items
from services.table_service import TableService, TableState

from .events.publishers import (
    publish_order_canceled,
    publish_order_created,
    publish_order_items_modified,
    publish_order_split,
    publish_order_state_changed,
    publish_orders_consolidated,
)
from .models import (
    CancellationResult,
    CatalogCombo,
    CatalogProduct,
    ComboComponent,
    ComboTarget,
    ConsolidationResult,
    CreateOrderRequest,
    Order,
    OrderItem,
    OrderLine,
    OrderPreview,
    OrderState,
    OrderType,
    SplitPart,
    SplitResult,
    StateChange,
    StateChangeResult,
)
from .protocols import CatalogClientProtocol, NotificationSinkProtocol, OrderStoreProtocol

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class OrderService:
    """
    Order lifecycle manager

    Business-rule violations are raised as core.errors exceptions; storage
    and catalog failures propagate unchanged after any compensation.
    """

    VALID_TRANSITIONS = {
        OrderState.PENDING: [OrderState.IN_PREPARATION, OrderState.CANCELLED],
        OrderState.IN_PREPARATION: [OrderState.READY, OrderState.CANCELLED],
        OrderState.READY: [OrderState.DELIVERED],
        OrderState.DELIVERED: [OrderState.INVOICED],
        OrderState.INVOICED: [],  # Terminal state
        OrderState.CANCELLED: [],  # Terminal state
    }

    # Kitchen minutes per product category
    CATEGORY_PREPARATION_MINUTES = {
        "main courses": 25,
        "soups": 20,
        "seafood": 30,
        "fried": 15,
        "sides": 10,
        "beverages": 5,
        "desserts": 10,
        "breakfast": 20,
    }
    DEFAULT_PREPARATION_MINUTES = 15
    BASE_PREPARATION_MINUTES = 5
    PER_LINE_MINUTES = 2
    MAX_COMPLEXITY_MINUTES = 20

    MAX_LINE_QUANTITY = 99

    def __init__(
        self,
        store: OrderStoreProtocol,
        stock_ledger: StockLedger,
        table_service: TableService,
        pricing_engine: PricingEngine,
        catalog_client: CatalogClientProtocol,
        notifier: Optional[NotificationSinkProtocol] = None,
        event_bus=None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.stock = stock_ledger
        self.tables = table_service
        self.pricing = pricing_engine
        self.catalog = catalog_client
        self.notifier = notifier
        self.event_bus = event_bus
        self.config = config or EngineConfig()
        self._clock = clock or utc_now
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._notifications: Set[asyncio.Task] = set()

    # ====================
    # Queries
    # ====================

    async def get_order(self, order_id: str) -> Order:
        return await self._load(order_id)

    @property
    def pending_notifications(self) -> int:
        return len(self._notifications)

    async def flush_notifications(self, timeout: Optional[float] = None) -> None:
        """
        Wait for scheduled notifications to reach the sink

        Notifications still running after the timeout are cancelled.
        """
        pending = list(self._notifications)
        if not pending:
            return
        _, unfinished = await asyncio.wait(pending, timeout=timeout)
        for task in unfinished:
            task.cancel()
        if unfinished:
            logger.warning(f"Cancelled {len(unfinished)} notifications still pending after {timeout}s")
            await asyncio.gather(*unfinished, return_exceptions=True)

    def estimate_preparation_minutes(self, lines: List[OrderLine]) -> int:
        """
        Estimated kitchen time for a set of lines

        5 minutes base, plus the slowest category present, plus 2 minutes per
        line capped at 20.
        """
        if not lines:
            return 0
        slowest = max(self._line_minutes(line) for line in lines)
        complexity = min(self.PER_LINE_MINUTES * len(lines), self.MAX_COMPLEXITY_MINUTES)
        return self.BASE_PREPARATION_MINUTES + slowest + complexity

    async def preview_order(self, request: CreateOrderRequest) -> OrderPreview:
        """Validate and price an order without holding stock or touching tables"""
        lines, violations = await self._resolve_items(request.items)
        violations.extend(await self._validate_placement(request))

        warnings: List[str] = []
        if lines:
            for product_id, quantity in sorted(aggregate_items(self._stock_items(lines)).items()):
                availability = await self.stock.check_availability(product_id, quantity)
                if not availability.available:
                    violations.append(Violation(
                        field="items",
                        message=(
                            f"Insufficient stock for {product_id}: requested {quantity}, "
                            f"available {availability.available_quantity}"
                        ),
                    ))
                elif availability.low_stock:
                    warnings.append(
                        f"{product_id} is running low ({availability.available_quantity} available, "
                        f"{availability.stock_level.value})"
                    )

        return OrderPreview(
            valid=not violations,
            violations=violations,
            totals=self.pricing.compute_totals(lines) if lines else None,
            estimated_preparation_minutes=self.estimate_preparation_minutes(lines) if lines else None,
            low_stock_warnings=warnings,
        )

    # ====================
    # Creation and modification
    # ====================

    async def create_order(self, request: CreateOrderRequest) -> Order:
        """
        Create an order in Pending

        Validates every rule in one pass, holds stock for all lines, attaches
        or assigns a table for dine-in orders and persists the order. A
        failure after the hold releases it (and returns the table to its
        previous state) before the error propagates.

        Raises:
            ValidationError: Every violated rule
            StockExhaustedError: Products that cannot be held
            NoTableAvailableError: No free table fits the party
        """
        lines, violations = await self._resolve_items(request.items)
        violations.extend(await self._validate_placement(request))
        if violations:
            logger.warning(f"Order rejected with {len(violations)} violations")
            raise ValidationError(violations)

        totals = self.pricing.compute_totals(lines)
        order_id = f"ord_{uuid.uuid4().hex[:16]}"
        reservation = await self.stock.hold(self._stock_items(lines), order_id=order_id)

        table_id: Optional[str] = None
        previous_table_state: Optional[TableState] = None
        try:
            table_id, previous_table_state = await self._attach_table(request)
            now = self._clock()
            order = Order(
                order_id=order_id,
                number=await self._next_number(now),
                order_type=request.order_type,
                table_id=table_id,
                customer_id=request.customer_id,
                staff_id=request.staff_id,
                party_size=request.party_size,
                lines=lines,
                notes=request.notes,
                estimated_preparation_minutes=self.estimate_preparation_minutes(lines),
                reservation_id=reservation.reservation_id,
                history=[StateChange(to_state=OrderState.PENDING, at=now, staff_id=request.staff_id)],
                created_at=now,
                updated_at=now,
                **self._totals_update(totals),
            )
            order = await self.store.save_order(order)
        except (Exception, asyncio.CancelledError):
            await self.stock.release(reservation.reservation_id, reason="order creation failed")
            if table_id:
                await self.tables.undo_occupation(table_id, previous_table_state, reason="order creation failed")
            raise

        logger.info(
            f"Order {order.number} created ({order.order_type.value}, table {order.table_id or '-'}, "
            f"{len(order.lines)} lines, total {order.total})"
        )
        await publish_order_created(self.event_bus, order)
        self._notify(order.order_id, order.state)
        return order

    async def modify_items(self, order_id: str, items: List[OrderItem], staff_id: Optional[str] = None) -> Order:
        """
        Replace all lines of a Pending order inside the modification window

        The previous hold is swapped for a new one atomically; if the new
        items cannot be held the order and its hold stay unchanged.
        """
        async with self._locks[order_id]:
            order = await self._load(order_id)
            self._ensure_modifiable(order)

            lines, violations = await self._resolve_items(items)
            if violations:
                logger.warning(f"Modification of order {order.number} rejected with {len(violations)} violations")
                raise ValidationError(violations)

            totals = self.pricing.compute_totals(lines)
            stock_items = self._stock_items(lines)
            if order.reservation_id and self.stock.get_reservation(order.reservation_id):
                reservation = await self.stock.rehold(order.reservation_id, stock_items, order_id=order_id)
            else:
                reservation = await self.stock.hold(stock_items, order_id=order_id)

            updated = order.model_copy(update={
                "lines": lines,
                "estimated_preparation_minutes": self.estimate_preparation_minutes(lines),
                "reservation_id": reservation.reservation_id,
                "updated_at": self._clock(),
                **self._totals_update(totals),
            })
            try:
                saved = await self.store.save_order(updated)
            except (Exception, asyncio.CancelledError):
                await self.stock.release(reservation.reservation_id, reason="order modification failed")
                raise

        logger.info(f"Order {saved.number} modified by {staff_id or 'unknown staff'}: total {order.total} -> {saved.total}")
        await publish_order_items_modified(self.event_bus, saved, order.total)
        return saved

    async def renew_reservation(self, order_id: str) -> Order:
        """Re-hold the current lines of a Pending order"""
        async with self._locks[order_id]:
            order = await self._load(order_id)
            if order.state != OrderState.PENDING:
                raise IllegalStateError(
                    f"Order {order.number} is {order.state.value}; only Pending orders hold stock",
                    fields=["state"],
                )

            stock_items = self._stock_items(order.lines)
            if order.reservation_id and self.stock.get_reservation(order.reservation_id):
                reservation = await self.stock.rehold(order.reservation_id, stock_items, order_id=order_id)
            else:
                reservation = await self.stock.hold(stock_items, order_id=order_id)

            updated = order.model_copy(update={
                "reservation_id": reservation.reservation_id,
                "updated_at": self._clock(),
            })
            try:
                saved = await self.store.save_order(updated)
            except (Exception, asyncio.CancelledError):
                await self.stock.release(reservation.reservation_id, reason="reservation renewal failed")
                raise

        logger.info(f"Stock reservation renewed for order {saved.number}: {reservation.reservation_id}")
        return saved

    # ====================
    # State changes
    # ====================

    async def change_state(
        self,
        order_id: str,
        target: Union[OrderState, str],
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> StateChangeResult:
        """
        Apply a transition from the transition table

        Entering InPreparation confirms the stock hold; entering Cancelled
        restores stock; entering Invoiced frees the table once no other
        active order references it.
        """
        target = OrderState(target)
        async with self._locks[order_id]:
            order = await self._load(order_id)
            previous = order.state
            saved = await self._transition(order, target, staff_id, reason)
        self._discard_lock(saved)

        return StateChangeResult(
            order=saved,
            previous_state=previous,
            preparation_progress=saved.preparation_progress,
        )

    async def cancel_order(self, order_id: str, reason: str, staff_id: Optional[str] = None) -> CancellationResult:
        """
        Cancel an order with an audit reason

        The refund equals the order total only if the order never left
        Pending.
        """
        if not reason or not reason.strip():
            raise ValidationError([Violation(field="reason", message="A cancellation reason is required")])

        async with self._locks[order_id]:
            order = await self._load(order_id)
            previous = order.state
            refund = order.total if previous == OrderState.PENDING else self.pricing.quantize(ZERO)
            notes = f"{order.notes}\n" if order.notes else ""
            notes += f"Cancelled: {reason}"
            saved = await self._transition(
                order,
                OrderState.CANCELLED,
                staff_id,
                reason,
                updates={"notes": notes},
            )
        self._discard_lock(saved)

        logger.info(f"Order {saved.number} cancelled from {previous.value}, refund {refund}")
        await publish_order_canceled(self.event_bus, saved, previous, reason, refund)
        return CancellationResult(order=saved, refund_amount=refund, reason=reason)

    # ====================
    # Split and consolidation
    # ====================

    async def split_order(
        self,
        order_id: str,
        parts: List[SplitPart],
        staff_id: Optional[str] = None,
    ) -> SplitResult:
        """
        Split a Delivered order into several Delivered orders

        Each part receives whole or partial source lines. Line discounts are
        apportioned by quantity; the order discount and tax by each part's
        share of the subtotal. Remainders go to the last part, so the parts
        reconcile with the source to the minor unit. The source becomes
        Invoiced.
        """
        async with self._locks[order_id]:
            source = await self._load(order_id)
            if source.state != OrderState.DELIVERED:
                raise IllegalStateError(
                    f"Only Delivered orders can be split; order {source.number} is {source.state.value}",
                    fields=["state"],
                )
            allocations = self._validate_split(source, parts)

            part_lines = self._split_lines(source, allocations)
            part_subtotals = [sum((line.subtotal for line in lines), ZERO) for lines in part_lines]
            discounts = self._split_discounts(source, part_subtotals)
            taxes = self.pricing.apportion(source.tax, part_subtotals)

            now = self._clock()
            derived: List[Order] = []
            for index, lines in enumerate(part_lines):
                discount = sum((d.amount for d in discounts[index]), ZERO)
                subtotal = part_subtotals[index]
                order = self._derived_order(
                    template=source,
                    lines=lines,
                    now=now,
                    number=await self._next_number(now),
                    staff_id=staff_id,
                    reason=f"Split from order {source.number}",
                    subtotal=subtotal,
                    discount=discount,
                    tax=taxes[index],
                    applied_discounts=discounts[index],
                    split_from=source.order_id,
                )
                derived.append(await self.store.save_order(order))

            source = await self._transition(
                source,
                OrderState.INVOICED,
                staff_id,
                reason=f"Split into {', '.join(o.number for o in derived)}",
            )
        self._discard_lock(source)

        logger.info(f"Order {source.number} split into {len(derived)} orders")
        await publish_order_split(self.event_bus, source, derived)
        for order in derived:
            await publish_order_created(self.event_bus, order)
            self._notify(order.order_id, order.state)
        return SplitResult(source_order=source, orders=derived)

    async def consolidate_orders(
        self,
        order_ids: List[str],
        table_id: Optional[str] = None,
        staff_id: Optional[str] = None,
    ) -> ConsolidationResult:
        """
        Merge several Delivered orders into one Delivered order

        Totals are the sums of the source totals. The merged order sits on
        the named source table (default: the first source's table); the
        sources become Invoiced.
        """
        violations: List[Violation] = []
        if len(order_ids) < 2:
            violations.append(Violation(field="order_ids", message="At least two orders are required"))
        if len(set(order_ids)) != len(order_ids):
            violations.append(Violation(field="order_ids", message="Order ids must be distinct"))
        if violations:
            raise ValidationError(violations)

        async with self._order_locks(order_ids):
            sources = [await self._load(order_id) for order_id in order_ids]

            not_delivered = [o for o in sources if o.state != OrderState.DELIVERED]
            if not_delivered:
                listing = ", ".join(f"{o.number} ({o.state.value})" for o in not_delivered)
                raise IllegalStateError(
                    f"Only Delivered orders can be consolidated: {listing}",
                    fields=["order_ids"],
                )
            if table_id is not None and table_id not in {o.table_id for o in sources}:
                raise ValidationError([Violation(
                    field="table_id",
                    message=f"Table {table_id} does not belong to any of the orders",
                )])

            now = self._clock()
            lines = [line.model_copy(update={"line_id": self._new_line_id()}) for o in sources for line in o.lines]
            party_sizes = [o.party_size for o in sources if o.party_size]
            target_table = table_id or sources[0].table_id
            merged = self._derived_order(
                template=sources[0],
                lines=lines,
                now=now,
                number=await self._next_number(now),
                staff_id=staff_id,
                reason=f"Consolidated from {', '.join(o.number for o in sources)}",
                subtotal=sum((o.subtotal for o in sources), ZERO),
                discount=sum((o.discount for o in sources), ZERO),
                tax=sum((o.tax for o in sources), ZERO),
                applied_discounts=[d for o in sources for d in o.applied_discounts],
                table_id=target_table,
                party_size=sum(party_sizes) if party_sizes else None,
                consolidated_from=list(order_ids),
            )
            merged = await self.store.save_order(merged)

            invoiced = [
                await self._transition(o, OrderState.INVOICED, staff_id, reason=f"Consolidated into {merged.number}")
                for o in sources
            ]
        for order in invoiced:
            self._discard_lock(order)

        logger.info(f"Orders {', '.join(o.number for o in invoiced)} consolidated into {merged.number}")
        await publish_orders_consolidated(self.event_bus, merged)
        self._notify(merged.order_id, merged.state)
        if merged.table_id:
            await self.tables.check_ready_for_billing(merged.table_id)
        return ConsolidationResult(order=merged, source_orders=invoiced)

    # ====================
    # Transition machinery
    # ====================

    async def _transition(
        self,
        order: Order,
        target: OrderState,
        staff_id: Optional[str] = None,
        reason: Optional[str] = None,
        updates: Optional[Dict[str, Any]] = None,
    ) -> Order:
        if target not in self.VALID_TRANSITIONS.get(order.state, []):
            logger.warning(f"Illegal transition for order {order.number}: {order.state.value} -> {target.value}")
            raise StateTransitionError(order.state.value, target.value)

        now = self._clock()
        change = StateChange(from_state=order.state, to_state=target, at=now, staff_id=staff_id, reason=reason)
        updated = order.model_copy(update={
            "state": target,
            "updated_at": now,
            "history": order.history + [change],
            **(updates or {}),
        })

        if target == OrderState.IN_PREPARATION:
            if not order.reservation_id:
                raise IllegalStateError(
                    f"Order {order.number} has no stock reservation",
                    fields=["reservation_id"],
                )
            if self.stock.get_reservation(order.reservation_id) is None:
                # evicted after expiry; renew_reservation holds again
                raise ReservationExpiredError(order.reservation_id)
            await self.stock.confirm(order.reservation_id)
            try:
                saved = await self.store.save_order(updated)
            except (Exception, asyncio.CancelledError):
                await self.stock.revert_confirmation(order.reservation_id)
                raise
        else:
            saved = await self.store.save_order(updated)
            await self._after_transition(saved)

        logger.info(f"Order {saved.number}: {order.state.value} -> {saved.state.value}")
        await publish_order_state_changed(self.event_bus, saved, order.state, staff_id, reason)
        self._notify(saved.order_id, saved.state)
        return saved

    async def _after_transition(self, order: Order) -> None:
        if order.state == OrderState.CANCELLED:
            if order.reservation_id and self.stock.get_reservation(order.reservation_id):
                await self.stock.release(order.reservation_id, reason="order cancelled")
                self.stock.forget(order.reservation_id)
            if order.table_id:
                await self.tables.release_if_idle(order.table_id)
        elif order.state == OrderState.INVOICED:
            if order.reservation_id:
                self.stock.forget(order.reservation_id)
            if order.table_id:
                await self.tables.release_if_idle(order.table_id)
        elif order.state == OrderState.DELIVERED:
            if order.table_id:
                await self.tables.check_ready_for_billing(order.table_id)

    def _notify(self, order_id: str, state: OrderState) -> None:
        """Schedule a notification; the caller never waits for the sink"""
        if not self.notifier:
            return
        task = asyncio.create_task(self._deliver_notification(order_id, state))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _deliver_notification(self, order_id: str, state: OrderState) -> None:
        try:
            await self.notifier.notify(order_id, state)
        except Exception as e:
            logger.error(f"Notification for order {order_id} ({state.value}) failed: {e}")

    # ====================
    # Validation
    # ====================

    async def _resolve_items(self, items: List[OrderItem]) -> Tuple[List[OrderLine], List[Violation]]:
        """Look up every item and build priced lines, collecting all violations"""
        lines: List[OrderLine] = []
        violations: List[Violation] = []
        if not items:
            violations.append(Violation(field="items", message="An order needs at least one item"))

        for index, item in enumerate(items):
            field = f"items[{index}]"
            found: List[Violation] = []

            if not 1 <= item.quantity <= self.MAX_LINE_QUANTITY:
                found.append(Violation(
                    field=f"{field}.quantity",
                    message=f"Quantity must be between 1 and {self.MAX_LINE_QUANTITY}",
                ))
            if item.discount < ZERO:
                found.append(Violation(field=f"{field}.discount", message="Discount cannot be negative"))

            snapshot = await self._lookup(item)
            label = f"{item.target.kind} {self._target_id(item)}"
            if snapshot is None:
                found.append(Violation(field=f"{field}.target", message=f"Unknown {label}"))
            elif not snapshot.available:
                found.append(Violation(field=f"{field}.target", message=f"{snapshot.name} is not available"))
            elif isinstance(snapshot, CatalogCombo) and not snapshot.components:
                found.append(Violation(field=f"{field}.target", message=f"Combo {snapshot.name} has no components"))
            elif not found and item.discount > snapshot.price * item.quantity:
                found.append(Violation(field=f"{field}.discount", message="Discount exceeds the line amount"))

            if found:
                violations.extend(found)
                continue
            lines.append(self._build_line(item, snapshot))

        return lines, violations

    async def _validate_placement(self, request: CreateOrderRequest) -> List[Violation]:
        """Staff, order type, party size and table rules"""
        violations: List[Violation] = []
        if not request.staff_id:
            violations.append(Violation(field="staff_id", message="A staff member is required"))
        if request.party_size is not None and request.party_size < 1:
            violations.append(Violation(field="party_size", message="Party size must be at least 1"))

        if request.order_type != OrderType.DINE_IN:
            if request.table_id:
                violations.append(Violation(
                    field="table_id",
                    message=f"{request.order_type.value} orders cannot be attached to a table",
                ))
            return violations

        if not request.table_id:
            if request.party_size is None:
                violations.append(Violation(
                    field="table_id",
                    message="Dine-in orders need a table or a party size",
                ))
            return violations

        try:
            table = await self.tables.get_table(request.table_id)
        except NotFoundError:
            violations.append(Violation(field="table_id", message=f"Table {request.table_id} not found"))
            return violations

        if table.state not in (TableState.FREE, TableState.RESERVED):
            violations.append(Violation(
                field="table_id",
                message=f"Table {table.number} is {table.state.value}",
            ))
        if request.party_size is not None and request.party_size > table.capacity:
            violations.append(Violation(
                field="party_size",
                message=f"Table {table.number} seats {table.capacity}, party has {request.party_size}",
            ))
        return violations

    def _ensure_modifiable(self, order: Order) -> None:
        if order.state != OrderState.PENDING:
            logger.warning(f"Modification rejected, order {order.number} is {order.state.value}")
            raise IllegalStateError(
                f"Order {order.number} is {order.state.value}; only Pending orders can be modified",
                fields=["state"],
            )

        window = self.config.modification_window_minutes
        elapsed = minutes_between(order.created_at, self._clock())
        if elapsed > window:
            logger.warning(f"Modification rejected, order {order.number} is {elapsed:.0f} minutes old")
            raise IllegalStateError(
                f"Order {order.number} can only be modified within {window} minutes of creation",
                fields=["created_at"],
                details={"elapsed_minutes": round(elapsed, 1), "window_minutes": window},
            )

    def _validate_split(self, source: Order, parts: List[SplitPart]) -> List[List[Tuple[OrderLine, int]]]:
        """Check that the parts partition the source lines exactly"""
        violations: List[Violation] = []
        if len(parts) < 2:
            violations.append(Violation(field="parts", message="A split needs at least two parts"))

        by_id = {line.line_id: line for line in source.lines}
        allocated: Dict[str, int] = defaultdict(int)
        allocations: List[List[Tuple[OrderLine, int]]] = []

        for p_index, part in enumerate(parts):
            field = f"parts[{p_index}]"
            if not part.lines:
                violations.append(Violation(field=field, message="A split part cannot be empty"))
            seen = set()
            part_allocation: List[Tuple[OrderLine, int]] = []
            for s_index, selection in enumerate(part.lines):
                line = by_id.get(selection.line_id)
                if line is None:
                    violations.append(Violation(
                        field=f"{field}.lines[{s_index}]",
                        message=f"Line {selection.line_id} is not part of order {source.number}",
                    ))
                    continue
                if selection.line_id in seen:
                    violations.append(Violation(
                        field=f"{field}.lines[{s_index}]",
                        message=f"Line {selection.line_id} appears twice in the same part",
                    ))
                    continue
                seen.add(selection.line_id)

                quantity = line.quantity if selection.quantity is None else selection.quantity
                if quantity < 1:
                    violations.append(Violation(
                        field=f"{field}.lines[{s_index}].quantity",
                        message="Quantity must be at least 1",
                    ))
                    continue
                allocated[line.line_id] += quantity
                part_allocation.append((line, quantity))
            allocations.append(part_allocation)

        for line in source.lines:
            if allocated[line.line_id] != line.quantity:
                violations.append(Violation(
                    field=f"lines.{line.line_id}",
                    message=f"{allocated[line.line_id]} of {line.quantity} units of {line.name} allocated",
                ))

        if violations:
            logger.warning(f"Split of order {source.number} rejected with {len(violations)} violations")
            raise ValidationError(violations)
        return allocations

    # ====================
    # Helpers
    # ====================

    async def _load(self, order_id: str) -> Order:
        order = await self.store.load_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", fields=["order_id"])
        return order

    @asynccontextmanager
    async def _order_locks(self, order_ids: Iterable[str]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for order_id in sorted(set(order_ids)):
                await stack.enter_async_context(self._locks[order_id])
            yield

    def _discard_lock(self, order: Order) -> None:
        # terminal orders accept no further writes
        if order.state.is_terminal:
            self._locks.pop(order.order_id, None)

    async def _attach_table(self, request: CreateOrderRequest) -> Tuple[Optional[str], Optional[TableState]]:
        """Occupy the requested or best-fitting table; returns it with the state it left"""
        if request.order_type != OrderType.DINE_IN:
            return None, None
        if request.table_id:
            _, previous = await self.tables.occupy_for_order(request.table_id, request.party_size)
            return request.table_id, previous

        assignment = await self.tables.assign_best_table(request.party_size, request.location_preference)
        if not assignment.assigned:
            raise NoTableAvailableError(request.party_size, assignment.estimated_wait_minutes or 0)
        return assignment.table.table_id, TableState.FREE

    async def _next_number(self, now: datetime) -> str:
        sequence = await self.store.next_order_sequence(now.date())
        return f"ORD-{now:%Y%m%d}-{sequence:04d}"

    async def _lookup(self, item: OrderItem) -> Optional[Union[CatalogProduct, CatalogCombo]]:
        if isinstance(item.target, ComboTarget):
            if not item.target.combo_id:
                return None
            return await self.catalog.get_combo(item.target.combo_id)
        if not item.target.product_id:
            return None
        return await self.catalog.get_product(item.target.product_id)

    @staticmethod
    def _target_id(item: OrderItem) -> str:
        if isinstance(item.target, ComboTarget):
            return item.target.combo_id
        return item.target.product_id

    @staticmethod
    def _new_line_id() -> str:
        return f"line_{uuid.uuid4().hex[:12]}"

    def _build_line(self, item: OrderItem, snapshot: Union[CatalogProduct, CatalogCombo]) -> OrderLine:
        unit_price = self.pricing.quantize(snapshot.price)
        discount = self.pricing.quantize(item.discount)
        components: List[ComboComponent] = []
        if isinstance(snapshot, CatalogCombo):
            components = [c.model_copy() for c in snapshot.components]
        return OrderLine(
            line_id=self._new_line_id(),
            target=item.target,
            name=snapshot.name,
            category=snapshot.category,
            quantity=item.quantity,
            unit_price=unit_price,
            discount=discount,
            subtotal=self.pricing.quantize(unit_price * item.quantity - discount),
            note=item.note,
            preparation_minutes=snapshot.preparation_minutes,
            components=components,
        )

    def _line_minutes(self, line: OrderLine) -> int:
        if line.preparation_minutes is not None:
            return line.preparation_minutes
        category = (line.category or "").strip().casefold()
        return self.CATEGORY_PREPARATION_MINUTES.get(category, self.DEFAULT_PREPARATION_MINUTES)

    @staticmethod
    def _stock_items(lines: List[OrderLine]) -> List[StockItem]:
        """Stock consumed by lines; combos expand into their components"""
        items: List[StockItem] = []
        for line in lines:
            if isinstance(line.target, ComboTarget):
                for component in line.components:
                    items.append(StockItem(product_id=component.product_id, quantity=component.quantity * line.quantity))
            else:
                items.append(StockItem(product_id=line.target.product_id, quantity=line.quantity))
        return items

    @staticmethod
    def _totals_update(totals) -> Dict[str, Any]:
        return {
            "subtotal": totals.subtotal,
            "discount": totals.discount,
            "tax": totals.tax,
            "total": totals.total,
            "applied_discounts": totals.applied_discounts,
        }

    def _split_lines(
        self,
        source: Order,
        allocations: List[List[Tuple[OrderLine, int]]],
    ) -> List[List[OrderLine]]:
        """Derived lines per part, with line discounts apportioned by quantity"""
        shares: Dict[Tuple[str, int], Decimal] = {}
        for line in source.lines:
            holders = [
                (index, quantity)
                for index, part in enumerate(allocations)
                for part_line, quantity in part
                if part_line.line_id == line.line_id
            ]
            amounts = self.pricing.apportion(line.discount, [Decimal(q) for _, q in holders])
            for (index, _), amount in zip(holders, amounts):
                shares[(line.line_id, index)] = amount

        part_lines: List[List[OrderLine]] = []
        for index, part in enumerate(allocations):
            lines = []
            for line, quantity in part:
                discount = shares[(line.line_id, index)]
                lines.append(line.model_copy(update={
                    "line_id": self._new_line_id(),
                    "quantity": quantity,
                    "discount": discount,
                    "subtotal": self.pricing.quantize(line.unit_price * quantity - discount),
                }))
            part_lines.append(lines)
        return part_lines

    def _split_discounts(self, source: Order, part_subtotals: List[Decimal]) -> List[List[AppliedDiscount]]:
        """Order-level discounts apportioned by part subtotal"""
        per_part: List[List[AppliedDiscount]] = [[] for _ in part_subtotals]
        applied = source.applied_discounts
        if not applied and source.discount > ZERO:
            applied = [AppliedDiscount(rule="ORDER_DISCOUNT", description="Order discount", amount=source.discount)]

        for discount in applied:
            for index, amount in enumerate(self.pricing.apportion(discount.amount, part_subtotals)):
                per_part[index].append(discount.model_copy(update={"amount": amount}))
        return per_part

    def _derived_order(
        self,
        template: Order,
        lines: List[OrderLine],
        now: datetime,
        number: str,
        staff_id: Optional[str],
        reason: str,
        subtotal: Decimal,
        discount: Decimal,
        tax: Decimal,
        applied_discounts: List[AppliedDiscount],
        **overrides: Any,
    ) -> Order:
        """Delivered order built from existing lines, totals carried over"""
        fields: Dict[str, Any] = dict(
            order_id=f"ord_{uuid.uuid4().hex[:16]}",
            number=number,
            order_type=template.order_type,
            table_id=template.table_id,
            customer_id=template.customer_id,
            staff_id=staff_id or template.staff_id,
            state=OrderState.DELIVERED,
            lines=lines,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=subtotal - discount + tax,
            applied_discounts=applied_discounts,
            notes=template.notes,
            estimated_preparation_minutes=self.estimate_preparation_minutes(lines),
            history=[StateChange(to_state=OrderState.DELIVERED, at=now, staff_id=staff_id, reason=reason)],
            created_at=now,
            updated_at=now,
        )
        fields.update(overrides)
        return Order(**fields)
