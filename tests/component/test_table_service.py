"""
Table Service Component Tests

Best-fit assignment, lifecycle transitions, release rules and rotation alerts.
"""
import asyncio
from datetime import timedelta

import pytest

from core.errors import IllegalStateError, NotFoundError, StateTransitionError, ValidationError
from services.fulfillment_service import MemoryStore
from services.order_service import OrderState
from services.table_service import AlertUrgency, TableService, TableState
from tests.fixtures import make_order

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


class TestAssignBestTable:

    async def test_exact_fit_wins(self, table_service, mock_event_bus):
        result = await table_service.assign_best_table(4)

        assert result.assigned is True
        assert result.table.table_id == "tbl_2"
        assert result.table.state == TableState.OCCUPIED
        assert result.score == 150
        assert [c.table_id for c in result.alternatives] == ["tbl_3", "tbl_4"]
        mock_event_bus.assert_event_published("table.assigned", {"table_id": "tbl_2"})

    async def test_location_preference(self, table_service):
        result = await table_service.assign_best_table(2, location_preference="Terrace")

        # tbl_1: 150, tbl_2: 80 + 10
        assert result.table.table_id == "tbl_1"

        result = await table_service.assign_best_table(2, location_preference="Terrace")
        assert result.table.table_id == "tbl_2"

    async def test_no_table_returns_wait_estimate(self, table_service):
        result = await table_service.assign_best_table(9)

        assert result.assigned is False
        assert result.table is None
        assert result.estimated_wait_minutes == 75

    async def test_invalid_party_size(self, table_service):
        with pytest.raises(ValidationError):
            await table_service.assign_best_table(0)

    async def test_concurrent_requests_for_last_table(self, engine_config, mock_event_bus, clock):
        store = MemoryStore()
        store.seed_table("tbl_only", 1, 2)
        service = TableService(store, config=engine_config, event_bus=mock_event_bus, clock=clock)

        results = await asyncio.gather(
            service.assign_best_table(2),
            service.assign_best_table(2),
        )

        assigned = [r for r in results if r.assigned]
        waiting = [r for r in results if not r.assigned]
        assert len(assigned) == 1
        assert len(waiting) == 1
        assert waiting[0].estimated_wait_minutes == 45
        assert (await store.load_table("tbl_only")).state == TableState.OCCUPIED


class TestWaitEstimate:

    async def test_default_average(self, table_service):
        assert await table_service.estimate_wait(2) == 45

    async def test_large_party_adds_time(self, table_service):
        assert await table_service.estimate_wait(7) == 75

    async def test_uses_occupancy_history(self, table_service, clock):
        await table_service.occupy_table("tbl_1")
        clock.advance(minutes=40)
        await table_service.release_table("tbl_1")

        # avg 40 / 2 = 20
        assert await table_service.estimate_wait(2) == 20

    async def test_never_below_minimum(self, table_service, clock):
        await table_service.occupy_table("tbl_1")
        clock.advance(minutes=10)
        await table_service.release_table("tbl_1")

        assert await table_service.estimate_wait(2) == 15


class TestTransitions:

    async def test_occupy_and_release(self, table_service, store, mock_event_bus):
        table = await table_service.occupy_table("tbl_3", party_size=5)
        assert table.state == TableState.OCCUPIED
        assert table.occupied_since is not None

        released = await table_service.release_table("tbl_3")

        assert released.state == TableState.FREE
        assert released.occupied_since is None
        assert len(await store.list_occupancy_records()) == 1
        mock_event_bus.assert_event_published("table.released", {"table_id": "tbl_3"})

    async def test_party_larger_than_table(self, table_service):
        with pytest.raises(ValidationError):
            await table_service.occupy_table("tbl_1", party_size=3)

    async def test_cannot_occupy_occupied_table(self, table_service):
        await table_service.occupy_table("tbl_1")

        with pytest.raises(StateTransitionError):
            await table_service.occupy_table("tbl_1")

    async def test_reserved_to_occupied(self, table_service):
        await table_service.set_table_state("tbl_2", TableState.RESERVED, reason="booking")

        table = await table_service.occupy_table("tbl_2")

        assert table.state == TableState.OCCUPIED

    async def test_maintenance_only_from_free_or_reserved(self, table_service):
        await table_service.occupy_table("tbl_2")

        with pytest.raises(StateTransitionError):
            await table_service.set_table_state("tbl_2", TableState.MAINTENANCE)

    async def test_maintenance_back_to_free(self, table_service):
        await table_service.set_table_state("tbl_4", TableState.MAINTENANCE)

        table = await table_service.set_table_state("tbl_4", TableState.FREE)

        assert table.state == TableState.FREE

    async def test_maintenance_table_is_not_assigned(self, table_service):
        await table_service.set_table_state("tbl_2", TableState.MAINTENANCE)

        result = await table_service.assign_best_table(4)

        assert result.table.table_id == "tbl_3"

    async def test_release_free_table_is_noop(self, table_service, mock_event_bus):
        table = await table_service.release_table("tbl_1")

        assert table.state == TableState.FREE
        mock_event_bus.assert_no_events_published("table.released")

    async def test_unknown_table(self, table_service):
        with pytest.raises(NotFoundError):
            await table_service.get_table("tbl_missing")


class TestUndoOccupation:

    async def test_reports_previous_state(self, table_service):
        await table_service.set_table_state("tbl_2", TableState.RESERVED, reason="booking")

        table, previous = await table_service.occupy_for_order("tbl_2", party_size=2)

        assert table.state == TableState.OCCUPIED
        assert previous == TableState.RESERVED

    async def test_restores_reservation_without_occupancy_record(self, table_service, store, mock_event_bus):
        await table_service.set_table_state("tbl_2", TableState.RESERVED, reason="booking")
        await table_service.occupy_for_order("tbl_2")

        restored = await table_service.undo_occupation("tbl_2", TableState.RESERVED, reason="order creation failed")

        assert restored is True
        table = await store.load_table("tbl_2")
        assert table.state == TableState.RESERVED
        assert table.occupied_since is None
        assert await store.list_occupancy_records() == []
        mock_event_bus.assert_no_events_published("table.released")

    async def test_keeps_table_with_attached_order(self, table_service, store):
        await table_service.occupy_for_order("tbl_2")
        store.seed_order(make_order("ord_open", state=OrderState.PENDING, table_id="tbl_2"))

        assert await table_service.undo_occupation("tbl_2", TableState.FREE) is False
        assert (await store.load_table("tbl_2")).state == TableState.OCCUPIED

    async def test_only_free_or_reserved(self, table_service):
        await table_service.occupy_for_order("tbl_2")

        with pytest.raises(ValidationError):
            await table_service.undo_occupation("tbl_2", TableState.MAINTENANCE)


class TestReleaseWithOrders:

    async def test_release_blocked_by_active_order(self, table_service, store):
        await table_service.occupy_table("tbl_2")
        store.seed_order(make_order("ord_open", state=OrderState.READY, table_id="tbl_2"))

        with pytest.raises(IllegalStateError) as exc_info:
            await table_service.release_table("tbl_2")

        assert exc_info.value.details["active_orders"] == ["ord_open"]
        assert (await store.load_table("tbl_2")).state == TableState.OCCUPIED

    async def test_terminal_orders_do_not_block(self, table_service, store):
        await table_service.occupy_table("tbl_2")
        store.seed_order(make_order("ord_done", state=OrderState.INVOICED, table_id="tbl_2"))

        assert await table_service.release_if_idle("tbl_2") is True
        assert (await store.load_table("tbl_2")).state == TableState.FREE

    async def test_release_if_idle_keeps_busy_table(self, table_service, store):
        await table_service.occupy_table("tbl_2")
        store.seed_order(make_order("ord_open", table_id="tbl_2"))

        assert await table_service.release_if_idle("tbl_2") is False

    async def test_ready_for_billing(self, table_service, store, mock_event_bus):
        store.seed_order(make_order("ord_a", state=OrderState.DELIVERED, table_id="tbl_2"))
        store.seed_order(make_order("ord_b", state=OrderState.READY, table_id="tbl_2"))

        assert await table_service.check_ready_for_billing("tbl_2") is False

        store.seed_order(make_order("ord_b", state=OrderState.DELIVERED, table_id="tbl_2"))

        assert await table_service.check_ready_for_billing("tbl_2") is True
        mock_event_bus.assert_event_published("table.ready_for_billing", {"table_id": "tbl_2"})


class TestRotationAlerts:

    async def test_alert_levels(self, table_service, store, clock):
        store.seed_table("tbl_long", 10, 4, state=TableState.OCCUPIED,
                         occupied_since=clock.now - timedelta(minutes=300))
        store.seed_table("tbl_mid", 11, 4, state=TableState.OCCUPIED,
                         occupied_since=clock.now - timedelta(minutes=200))
        store.seed_table("tbl_recent", 12, 4, state=TableState.OCCUPIED,
                         occupied_since=clock.now - timedelta(minutes=60))

        alerts = await table_service.get_rotation_alerts()

        assert [a.table_id for a in alerts] == ["tbl_long", "tbl_mid"]
        assert alerts[0].urgency == AlertUrgency.HIGH
        assert alerts[1].urgency == AlertUrgency.MEDIUM
        assert alerts[0].occupied_minutes == 300

    async def test_pending_preparation_extends_threshold(self, table_service, store, clock):
        store.seed_table("tbl_busy", 10, 4, state=TableState.OCCUPIED,
                         occupied_since=clock.now - timedelta(minutes=200))
        store.seed_order(make_order("ord_kitchen", state=OrderState.IN_PREPARATION,
                                    table_id="tbl_busy", estimated_preparation_minutes=30))

        assert await table_service.get_rotation_alerts() == []

    async def test_custom_threshold(self, table_service, store, clock):
        store.seed_table("tbl_x", 10, 4, state=TableState.OCCUPIED,
                         occupied_since=clock.now - timedelta(minutes=45))

        alerts = await table_service.get_rotation_alerts(threshold_minutes=30)

        assert [a.table_id for a in alerts] == ["tbl_x"]
