"""
Stock Reservation Ledger

Tracks temporary holds against inventory so that stock can never be
oversold. A hold reserves quantities for a TTL; confirming it decrements the
inventory record for real; releasing it either discards the hold or, for a
confirmed reservation, restores the stock.

Every read-modify-write of a product's stock runs under that product's lock.
Operations touching several products acquire the locks in sorted product-id
order, so two operations can never deadlock on each other.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

from core.clock import Clock, utc_now
from core.config import EngineConfig
from core.errors import (
    IllegalStateError,
    NotFoundError,
    ReservationExpiredError,
    StockExhaustedError,
    ValidationError,
    Violation,
)

from .events.publishers import (
    publish_stock_confirmed,
    publish_stock_held,
    publish_stock_low,
    publish_stock_released,
)
from .models import (
    AvailabilityResult,
    InventoryRecord,
    ReservationStatus,
    StockItem,
    StockLevel,
    StockReservation,
)
from .protocols import InventoryStoreProtocol

logger = logging.getLogger(__name__)


def aggregate_items(items: Iterable[StockItem]) -> Dict[str, int]:
    """Merge duplicate products into one quantity per product id"""
    totals: Dict[str, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


class StockLedger:
    """
    Stock reservation ledger

    Holds live in memory for their TTL only; inventory records belong to the
    injected store.
    """

    def __init__(
        self,
        store: InventoryStoreProtocol,
        config: Optional[EngineConfig] = None,
        event_bus=None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.event_bus = event_bus
        self._clock = clock or utc_now
        self._reservations: Dict[str, StockReservation] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.config.reservation_ttl_minutes)

    # ====================
    # Queries
    # ====================

    async def check_availability(
        self,
        product_id: str,
        quantity: int,
        exclude_reservation_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """
        Check whether a quantity of a product can be held right now

        Read-only. Available quantity is the on-hand count minus every active,
        unexpired hold. A product without an inventory record is unavailable.

        Args:
            product_id: Product to check
            quantity: Requested quantity
            exclude_reservation_id: Hold to ignore (when replacing it)
        """
        if quantity <= 0:
            raise ValidationError([Violation(field="quantity", message="Quantity must be positive")])

        record = await self.store.load_inventory(product_id)
        return self._availability(record, product_id, quantity, exclude_reservation_id)

    def get_reservation(self, reservation_id: str) -> Optional[StockReservation]:
        reservation = self._reservations.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    def held_quantity(self, product_id: str, exclude_reservation_id: Optional[str] = None) -> int:
        """Total quantity of a product under active holds"""
        now = self._clock()
        held = 0
        for reservation in self._reservations.values():
            if reservation.reservation_id == exclude_reservation_id or not reservation.is_active(now):
                continue
            for item in reservation.items:
                if item.product_id == product_id:
                    held += item.quantity
        return held

    # ====================
    # Mutations
    # ====================

    async def hold(self, items: List[StockItem], order_id: Optional[str] = None) -> StockReservation:
        """
        Create a reservation if and only if every item is available

        Partial holds are never created.

        Raises:
            ValidationError: No items given
            StockExhaustedError: Lists every product that cannot be held
        """
        if not items:
            raise ValidationError([Violation(field="items", message="At least one item is required")])

        totals = aggregate_items(items)
        async with self._product_locks(totals):
            await self._ensure_available(totals)
            reservation = self._new_reservation(totals, order_id)

        logger.info(
            f"Stock held: {reservation.reservation_id} for order {order_id or '-'} "
            f"({len(reservation.items)} products, expires {reservation.expires_at.isoformat()})"
        )
        await publish_stock_held(self.event_bus, reservation)
        return reservation.model_copy(deep=True)

    async def rehold(
        self,
        reservation_id: str,
        items: List[StockItem],
        order_id: Optional[str] = None,
    ) -> StockReservation:
        """
        Atomically replace an unconfirmed hold with a new one

        The previous hold does not count against the new request. If the new
        items cannot be held, the previous hold is left untouched.
        """
        if not items:
            raise ValidationError([Violation(field="items", message="At least one item is required")])

        previous = self._require(reservation_id)
        if previous.status == ReservationStatus.CONFIRMED:
            raise IllegalStateError(
                f"Reservation {reservation_id} is already confirmed",
                fields=["reservation_id"],
            )

        totals = aggregate_items(items)
        products = set(totals) | {i.product_id for i in previous.items}
        async with self._product_locks(products):
            await self._ensure_available(totals, exclude_reservation_id=reservation_id)
            now = self._clock()
            if previous.status == ReservationStatus.HELD:
                previous.status = ReservationStatus.RELEASED
                previous.released_at = now
            reservation = self._new_reservation(totals, order_id or previous.order_id)

        logger.info(f"Stock re-held: {reservation_id} replaced by {reservation.reservation_id}")
        await publish_stock_released(self.event_bus, previous, restored=False, reason="replaced")
        await publish_stock_held(self.event_bus, reservation)
        return reservation.model_copy(deep=True)

    async def confirm(self, reservation_id: str) -> StockReservation:
        """
        Decrement inventory by the held quantities

        Availability is re-checked under the product locks; the inventory
        record never goes negative.

        Raises:
            NotFoundError: Unknown reservation
            ReservationExpiredError: Hold is past its TTL
            IllegalStateError: Hold was already released
            StockExhaustedError: Stock no longer covers the hold
        """
        reservation = self._require(reservation_id)
        if reservation.status == ReservationStatus.CONFIRMED:
            return reservation.model_copy(deep=True)

        totals = aggregate_items(reservation.items)
        async with self._product_locks(totals):
            now = self._clock()
            if reservation.is_expired(now):
                reservation.status = ReservationStatus.EXPIRED
            if reservation.status == ReservationStatus.EXPIRED:
                logger.warning(f"Confirm rejected, reservation {reservation_id} expired at {reservation.expires_at.isoformat()}")
                raise ReservationExpiredError(reservation_id)
            if reservation.status != ReservationStatus.HELD:
                raise IllegalStateError(
                    f"Reservation {reservation_id} is {reservation.status.value}",
                    fields=["reservation_id"],
                )

            await self._ensure_available(totals, exclude_reservation_id=reservation_id)
            records = await self._apply(totals, sign=-1)

            reservation.status = ReservationStatus.CONFIRMED
            reservation.confirmed_at = now

        logger.info(f"Stock confirmed: {reservation_id} for order {reservation.order_id or '-'}")
        await publish_stock_confirmed(self.event_bus, reservation)
        for record in records:
            if record.available <= record.reorder_threshold:
                logger.warning(
                    f"Low stock for {record.product_id}: {record.available} left "
                    f"(reorder at {record.reorder_threshold})"
                )
                await publish_stock_low(self.event_bus, record.product_id, record.available, record.reorder_threshold)
        return reservation.model_copy(deep=True)

    async def release(self, reservation_id: str, reason: Optional[str] = None) -> StockReservation:
        """
        Discard a hold, or restore inventory for a confirmed reservation

        Releasing an already released or expired reservation is a no-op.
        """
        reservation = self._require(reservation_id)
        totals = aggregate_items(reservation.items)

        async with self._product_locks(totals):
            status = reservation.status
            if status in (ReservationStatus.RELEASED, ReservationStatus.EXPIRED):
                return reservation.model_copy(deep=True)

            restored = status == ReservationStatus.CONFIRMED
            if restored:
                await self._apply(totals, sign=1)
            reservation.status = ReservationStatus.RELEASED
            reservation.released_at = self._clock()

        logger.info(
            f"Stock released: {reservation_id} ({'inventory restored' if restored else 'hold discarded'})"
            + (f" - {reason}" if reason else "")
        )
        await publish_stock_released(self.event_bus, reservation, restored=restored, reason=reason)
        return reservation.model_copy(deep=True)

    async def revert_confirmation(self, reservation_id: str) -> StockReservation:
        """Undo a confirmation, restoring inventory and returning the reservation to held"""
        reservation = self._require(reservation_id)
        totals = aggregate_items(reservation.items)

        async with self._product_locks(totals):
            if reservation.status != ReservationStatus.CONFIRMED:
                return reservation.model_copy(deep=True)
            await self._apply(totals, sign=1)
            reservation.status = ReservationStatus.HELD
            reservation.confirmed_at = None

        logger.warning(f"Stock confirmation reverted: {reservation_id}")
        return reservation.model_copy(deep=True)

    def forget(self, reservation_id: str) -> bool:
        """
        Drop a reservation nothing can revert any more

        Called once the owning order is terminal. Returns False for unknown ids.
        """
        return self._reservations.pop(reservation_id, None) is not None

    def purge_expired(self) -> int:
        """
        Mark every unconfirmed hold past its TTL as expired

        Released and expired reservations are evicted from the ledger; a later
        lookup of their id finds nothing. Returns the number of newly expired
        holds.
        """
        now = self._clock()
        expired = 0
        for reservation in self._reservations.values():
            if reservation.is_expired(now):
                reservation.status = ReservationStatus.EXPIRED
                expired += 1

        evicted = [
            reservation_id
            for reservation_id, reservation in self._reservations.items()
            if reservation.status in (ReservationStatus.RELEASED, ReservationStatus.EXPIRED)
        ]
        for reservation_id in evicted:
            del self._reservations[reservation_id]

        if expired or evicted:
            logger.info(f"Purged {expired} expired stock holds, evicted {len(evicted)} reservations")
        return expired

    @property
    def reservation_count(self) -> int:
        return len(self._reservations)

    # ====================
    # Internals
    # ====================

    @asynccontextmanager
    async def _product_locks(self, product_ids: Iterable[str]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for product_id in sorted(set(product_ids)):
                await stack.enter_async_context(self._locks[product_id])
            yield

    def _require(self, reservation_id: str) -> StockReservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError(
                f"Reservation {reservation_id} not found",
                fields=["reservation_id"],
            )
        return reservation

    def _new_reservation(self, totals: Dict[str, int], order_id: Optional[str]) -> StockReservation:
        now = self._clock()
        reservation = StockReservation(
            reservation_id=f"res_{uuid.uuid4().hex[:16]}",
            order_id=order_id,
            items=[StockItem(product_id=pid, quantity=qty) for pid, qty in sorted(totals.items())],
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._reservations[reservation.reservation_id] = reservation
        return reservation

    def _availability(
        self,
        record: Optional[InventoryRecord],
        product_id: str,
        quantity: int,
        exclude_reservation_id: Optional[str] = None,
    ) -> AvailabilityResult:
        on_hand = record.available if record else 0
        threshold = record.reorder_threshold if record else 0
        held = self.held_quantity(product_id, exclude_reservation_id)
        available_quantity = max(on_hand - held, 0)

        return AvailabilityResult(
            product_id=product_id,
            requested=quantity,
            available=record is not None and available_quantity >= quantity,
            available_quantity=available_quantity,
            on_hand=on_hand,
            held=held,
            stock_level=self._stock_level(available_quantity, threshold),
            low_stock=available_quantity - quantity < threshold + self.config.low_stock_margin,
        )

    @staticmethod
    def _stock_level(quantity: int, threshold: int) -> StockLevel:
        if quantity <= 0:
            return StockLevel.OUT_OF_STOCK
        if quantity <= threshold:
            return StockLevel.LOW
        if quantity <= threshold * 2:
            return StockLevel.MODERATE
        return StockLevel.SUFFICIENT

    async def _ensure_available(
        self,
        totals: Dict[str, int],
        exclude_reservation_id: Optional[str] = None,
    ) -> None:
        """Raise StockExhaustedError naming every product that falls short"""
        shortfalls: List[AvailabilityResult] = []
        for product_id, quantity in sorted(totals.items()):
            record = await self.store.load_inventory(product_id)
            result = self._availability(record, product_id, quantity, exclude_reservation_id)
            if not result.available:
                shortfalls.append(result)

        if shortfalls:
            summary = ", ".join(
                f"{r.product_id} (requested {r.requested}, available {r.available_quantity})"
                for r in shortfalls
            )
            logger.warning(f"Insufficient stock: {summary}")
            raise StockExhaustedError(
                f"Insufficient stock for: {summary}",
                product_ids=[r.product_id for r in shortfalls],
                details={"unavailable": [r.model_dump(mode="json") for r in shortfalls]},
            )

    async def _apply(self, totals: Dict[str, int], sign: int) -> List[InventoryRecord]:
        """Adjust every product; undo the applied part if the store fails midway"""
        applied: List[Tuple[str, int]] = []
        records: List[InventoryRecord] = []
        try:
            for product_id, quantity in sorted(totals.items()):
                records.append(await self.store.adjust_inventory(product_id, sign * quantity))
                applied.append((product_id, quantity))
        except (Exception, asyncio.CancelledError):
            logger.error(f"Inventory adjustment failed after {len(applied)} products, rolling back")
            for product_id, quantity in applied:
                await self.store.adjust_inventory(product_id, -sign * quantity)
            raise
        return records
