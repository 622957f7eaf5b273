"""
Table Service Business Logic

Owns each table's lifecycle and the best-fit assignment search.

Table mutations run under one service-wide lock, so "select a candidate"
and "mark it Occupied" form a single atomic unit. The store's version check
rejects writes based on a stale read.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from core.clock import Clock, minutes_between, utc_now
from core.config import EngineConfig
from core.errors import (
    IllegalStateError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
    Violation,
)

from .events.publishers import (
    publish_table_assigned,
    publish_table_ready_for_billing,
    publish_table_released,
    publish_table_state_changed,
)
from .models import (
    AlertUrgency,
    AssignmentResult,
    OccupancyRecord,
    RotationAlert,
    Table,
    TableState,
)
from .protocols import TableStoreProtocol
from .scoring import rank_candidates

logger = logging.getLogger(__name__)


class TableService:
    """
    Table state machine and best-fit assignment

    Occupied tables become Free only when no non-terminal order is attached.
    """

    VALID_TRANSITIONS = {
        TableState.FREE: [TableState.OCCUPIED, TableState.RESERVED, TableState.MAINTENANCE],
        TableState.OCCUPIED: [TableState.FREE],
        TableState.RESERVED: [TableState.OCCUPIED, TableState.FREE, TableState.MAINTENANCE],
        TableState.MAINTENANCE: [TableState.FREE],
    }

    HIGH_URGENCY_FACTOR = 1.5
    MAX_ALTERNATIVES = 3

    def __init__(
        self,
        store: TableStoreProtocol,
        config: Optional[EngineConfig] = None,
        event_bus=None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.event_bus = event_bus
        self._clock = clock or utc_now
        self._lock = asyncio.Lock()

    # ====================
    # Queries
    # ====================

    async def get_table(self, table_id: str) -> Table:
        table = await self.store.load_table(table_id)
        if table is None:
            raise NotFoundError(f"Table {table_id} not found", fields=["table_id"])
        return table

    async def list_tables(self, state: Optional[TableState] = None) -> List[Table]:
        tables = await self.store.list_tables()
        if state is not None:
            tables = [t for t in tables if t.state == state]
        return sorted(tables, key=lambda t: t.number)

    async def estimate_wait(self, party_size: int) -> int:
        """
        Estimated wait in minutes for a party that cannot be seated

        Half the historical average occupancy of tables that could seat the
        party, plus extra time for large parties, never below the minimum.
        """
        records = [r for r in await self.store.list_occupancy_records() if r.capacity >= party_size]
        if records:
            average = sum(r.duration_minutes for r in records) / len(records)
        else:
            average = float(self.config.default_occupancy_minutes)

        wait = average / 2
        if party_size > self.config.large_party_size:
            wait += self.config.large_party_extra_wait_minutes
        return max(self.config.min_wait_minutes, int(round(wait)))

    async def get_rotation_alerts(self, threshold_minutes: Optional[int] = None) -> List[RotationAlert]:
        """
        Occupied tables past the rotation threshold, longest first

        The threshold of a table is extended by the longest estimated
        preparation time among its orders that have not been delivered yet.
        Advisory only: no state changes.
        """
        base_threshold = threshold_minutes if threshold_minutes is not None else self.config.rotation_threshold_minutes
        now = self._clock()
        alerts: List[RotationAlert] = []

        for table in await self.store.list_tables():
            if table.state != TableState.OCCUPIED or table.occupied_since is None:
                continue

            active = await self.store.list_active_orders_for_table(table.table_id)
            pending_prep = [o.estimated_preparation_minutes for o in active if not o.delivered]
            threshold = base_threshold + (max(pending_prep) if pending_prep else 0)

            occupied = minutes_between(table.occupied_since, now)
            if occupied <= threshold:
                continue

            if occupied > threshold * self.HIGH_URGENCY_FACTOR:
                urgency = AlertUrgency.HIGH
                recommendation = (
                    f"Table {table.number} has been occupied for {int(occupied)} minutes. "
                    f"Check whether the party needs the bill."
                )
            else:
                urgency = AlertUrgency.MEDIUM
                recommendation = f"Table {table.number} is nearing rotation time. Offer dessert or the bill."

            alerts.append(RotationAlert(
                table_id=table.table_id,
                number=table.number,
                capacity=table.capacity,
                location=table.location,
                occupied_since=table.occupied_since,
                occupied_minutes=int(occupied),
                threshold_minutes=threshold,
                urgency=urgency,
                recommendation=recommendation,
            ))

        alerts.sort(key=lambda a: a.occupied_minutes, reverse=True)
        return alerts

    # ====================
    # Assignment
    # ====================

    async def assign_best_table(
        self,
        party_size: int,
        location_preference: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Seat a party at the best-fitting free table

        Returns a "no table" result with an estimated wait when nothing fits;
        that is an expected outcome, not an error.
        """
        if party_size < 1:
            raise ValidationError([Violation(field="party_size", message="Party size must be at least 1")])

        async with self._lock:
            candidates = rank_candidates(
                await self.store.list_tables(),
                party_size,
                location_preference,
                self.config.location_match_bonus,
            )
            if not candidates:
                wait = await self.estimate_wait(party_size)
                logger.warning(f"No table available for party of {party_size}, estimated wait {wait} minutes")
                return AssignmentResult(
                    assigned=False,
                    estimated_wait_minutes=wait,
                    message=f"No table available for {party_size} guests. Estimated wait: {wait} minutes",
                )

            best = candidates[0]
            table = await self.get_table(best.table_id)
            old_state = table.state
            table = await self._save_state(table, TableState.OCCUPIED)

        logger.info(f"Table {table.number} assigned to party of {party_size} (score {best.score})")
        await publish_table_assigned(self.event_bus, table, party_size, best.score)
        await publish_table_state_changed(self.event_bus, table, old_state.value, reason="assigned")
        return AssignmentResult(
            assigned=True,
            table=table,
            score=best.score,
            alternatives=candidates[1:1 + self.MAX_ALTERNATIVES],
            message=f"Table {table.number} assigned",
        )

    async def occupy_table(self, table_id: str, party_size: Optional[int] = None) -> Table:
        """Mark a specific Free or Reserved table as Occupied"""
        table, _ = await self.occupy_for_order(table_id, party_size)
        return table

    async def occupy_for_order(self, table_id: str, party_size: Optional[int] = None) -> Tuple[Table, TableState]:
        """Occupy a table and report the state it left, for undo_occupation"""
        async with self._lock:
            table = await self.get_table(table_id)
            if party_size is not None and party_size > table.capacity:
                raise ValidationError([Violation(
                    field="party_size",
                    message=f"Table {table.number} seats {table.capacity}, party has {party_size}",
                )])
            old_state = table.state
            self._check_transition(table, TableState.OCCUPIED)
            table = await self._save_state(table, TableState.OCCUPIED)

        logger.info(f"Table {table.number} occupied")
        await publish_table_state_changed(self.event_bus, table, old_state.value, reason="occupied")
        return table, old_state

    async def undo_occupation(self, table_id: str, previous_state: TableState, reason: Optional[str] = None) -> bool:
        """
        Roll back an occupation whose order was never created

        The table returns to previous_state (Free or Reserved) unless an
        order is attached by now. No occupancy is recorded.
        """
        if previous_state not in (TableState.FREE, TableState.RESERVED):
            raise ValidationError([Violation(
                field="previous_state",
                message=f"Cannot return a table to {previous_state.value}",
            )])

        async with self._lock:
            table = await self.store.load_table(table_id)
            if table is None or table.state != TableState.OCCUPIED:
                return False
            if await self.store.list_active_orders_for_table(table_id):
                return False
            table = await self._save_state(table, previous_state)

        logger.info(f"Table {table.number} returned to {previous_state.value}" + (f" ({reason})" if reason else ""))
        await publish_table_state_changed(self.event_bus, table, TableState.OCCUPIED.value, reason=reason)
        return True

    # ====================
    # Release and status changes
    # ====================

    async def release_table(self, table_id: str, reason: Optional[str] = None) -> Table:
        """
        Return a table to Free

        Blocked while any non-terminal order is attached. Releasing a free
        table is a no-op.
        """
        async with self._lock:
            table = await self.get_table(table_id)
            if table.state == TableState.FREE:
                return table

            active = await self.store.list_active_orders_for_table(table_id)
            if active:
                ids = ", ".join(o.order_id for o in active)
                logger.warning(f"Release of table {table.number} blocked by active orders: {ids}")
                raise IllegalStateError(
                    f"Table {table.number} has active orders: {ids}",
                    fields=["table_id"],
                    details={"active_orders": [o.order_id for o in active]},
                )
            released, occupied_minutes = await self._free(table)

        await self._announce_release(released, table.state, occupied_minutes, reason)
        return released

    async def release_if_idle(self, table_id: str) -> bool:
        """Free an Occupied table once no active order references it"""
        async with self._lock:
            table = await self.store.load_table(table_id)
            if table is None or table.state != TableState.OCCUPIED:
                return False
            if await self.store.list_active_orders_for_table(table_id):
                return False
            released, occupied_minutes = await self._free(table)

        await self._announce_release(released, table.state, occupied_minutes, "orders closed")
        return True

    async def set_table_state(self, table_id: str, target: TableState, reason: Optional[str] = None) -> Table:
        """Staff-driven status change (reserve, maintenance, free)"""
        if target == TableState.FREE:
            return await self.release_table(table_id, reason=reason)
        if target == TableState.OCCUPIED:
            return await self.occupy_table(table_id)

        async with self._lock:
            table = await self.get_table(table_id)
            if table.state == target:
                return table
            old_state = table.state
            self._check_transition(table, target)
            table = await self._save_state(table, target)

        logger.info(f"Table {table.number} changed {old_state.value} -> {target.value}" + (f" ({reason})" if reason else ""))
        await publish_table_state_changed(self.event_bus, table, old_state.value, reason=reason)
        return table

    async def check_ready_for_billing(self, table_id: str) -> bool:
        """Publish table.ready_for_billing when every active order is delivered"""
        active = await self.store.list_active_orders_for_table(table_id)
        if not active or not all(o.delivered for o in active):
            return False

        logger.info(f"Table {table_id} ready for billing ({len(active)} orders)")
        await publish_table_ready_for_billing(self.event_bus, table_id, [o.order_id for o in active])
        return True

    # ====================
    # Internals
    # ====================

    def _check_transition(self, table: Table, target: TableState) -> None:
        if target not in self.VALID_TRANSITIONS.get(table.state, []):
            logger.warning(f"Illegal table transition for table {table.number}: {table.state.value} -> {target.value}")
            raise StateTransitionError(table.state.value, target.value, entity="table")

    async def _save_state(self, table: Table, target: TableState) -> Table:
        now = self._clock()
        updates: Dict[str, object] = {"state": target, "state_changed_at": now}
        if target == TableState.OCCUPIED:
            updates["occupied_since"] = now
        else:
            updates["occupied_since"] = None
        return await self.store.save_table(table.model_copy(update=updates))

    async def _free(self, table: Table):
        occupied_minutes = None
        if table.state == TableState.OCCUPIED and table.occupied_since is not None:
            now = self._clock()
            occupied_minutes = max(minutes_between(table.occupied_since, now), 0.0)
            await self.store.add_occupancy_record(OccupancyRecord(
                table_id=table.table_id,
                capacity=table.capacity,
                started_at=table.occupied_since,
                ended_at=now,
                duration_minutes=occupied_minutes,
            ))
        return await self._save_state(table, TableState.FREE), occupied_minutes

    async def _announce_release(
        self,
        table: Table,
        old_state: TableState,
        occupied_minutes: Optional[float],
        reason: Optional[str],
    ) -> None:
        logger.info(f"Table {table.number} released from {old_state.value}" + (f" ({reason})" if reason else ""))
        if old_state == TableState.OCCUPIED:
            await publish_table_released(self.event_bus, table, occupied_minutes)
        await publish_table_state_changed(self.event_bus, table, old_state.value, reason=reason)
