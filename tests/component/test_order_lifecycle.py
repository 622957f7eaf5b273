"""
Order Service Component Tests

Creation, modification window, state machine, cancellation and the
table/stock side effects of each transition.
"""
import asyncio
from decimal import Decimal

import pytest

from core.errors import (
    ConcurrentModificationError,
    ErrorKind,
    IllegalStateError,
    NoTableAvailableError,
    NotFoundError,
    ReservationExpiredError,
    StateTransitionError,
    StockExhaustedError,
    ValidationError,
)
from services.order_service import CreateOrderRequest, OrderState, OrderType
from services.table_service import TableState
from tests.fixtures import make_combo_item, make_create_request, make_item

pytestmark = [pytest.mark.component, pytest.mark.asyncio]

LIFECYCLE = [OrderState.IN_PREPARATION, OrderState.READY, OrderState.DELIVERED, OrderState.INVOICED]


async def advance_to(order_service, order_id: str, target: OrderState):
    """Walk an order along the happy path until it reaches target"""
    result = None
    for state in LIFECYCLE:
        result = await order_service.change_state(order_id, state, staff_id="staff_kitchen")
        if state == target:
            break
    return result.order


async def on_hand(store, product_id: str) -> int:
    return (await store.load_inventory(product_id)).available


class TestCreateOrder:

    async def test_dine_in_order_with_volume_discount(self, order_service, store, stock_ledger, mock_event_bus):
        order = await order_service.create_order(make_create_request())

        assert order.state == OrderState.PENDING
        assert order.subtotal == Decimal("1000.00")
        assert order.discount == Decimal("50.00")
        assert order.tax == Decimal("171.00")
        assert order.total == Decimal("1121.00")
        assert order.table_id == "tbl_2"
        assert order.preparation_progress == 0
        assert (await store.load_table("tbl_2")).state == TableState.OCCUPIED
        assert stock_ledger.held_quantity("prod_steak") == 2
        assert await on_hand(store, "prod_steak") == 20
        mock_event_bus.assert_event_published("order.created", {"order_id": order.order_id})

    async def test_business_number_is_sequential_per_day(self, order_service):
        first = await order_service.create_order(make_create_request(table_id="tbl_1"))
        second = await order_service.create_order(make_create_request(table_id="tbl_2"))

        assert first.number == "ORD-20260314-0001"
        assert second.number == "ORD-20260314-0002"

    async def test_preparation_estimate(self, order_service):
        order = await order_service.create_order(make_create_request(
            items=[make_item("prod_steak", 1), make_item("prod_fish", 1), make_item("prod_juice", 2)],
        ))

        # base 5 + seafood 30 + 3 lines * 2
        assert order.estimated_preparation_minutes == 41

    async def test_assigns_table_when_none_given(self, order_service, store):
        order = await order_service.create_order(make_create_request(table_id=None, party_size=5))

        assert order.table_id == "tbl_3"
        assert (await store.load_table("tbl_3")).state == TableState.OCCUPIED

    async def test_takeout_has_no_table(self, order_service, store):
        order = await order_service.create_order(make_create_request(
            table_id=None, party_size=None, order_type=OrderType.TAKEOUT,
        ))

        assert order.table_id is None
        assert all(t.state == TableState.FREE for t in await store.list_tables())

    async def test_combo_holds_component_stock(self, order_service, stock_ledger):
        order = await order_service.create_order(make_create_request(items=[make_combo_item(quantity=2)]))

        assert order.subtotal == Decimal("1120.00")
        assert stock_ledger.held_quantity("prod_steak") == 2
        assert stock_ledger.held_quantity("prod_juice") == 2

    async def test_every_violation_is_reported(self, order_service, stock_ledger, store):
        request = CreateOrderRequest(
            items=[make_item("prod_unknown", 1), make_item("prod_steak", 0)],
            table_id="tbl_1",
            party_size=3,
        )

        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(request)

        fields = exc_info.value.fields
        assert "items[0].target" in fields
        assert "items[1].quantity" in fields
        assert "staff_id" in fields
        assert "party_size" in fields
        assert stock_ledger.held_quantity("prod_steak") == 0
        assert (await store.load_table("tbl_1")).state == TableState.FREE

    async def test_empty_items(self, order_service):
        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(make_create_request(items=[]))

        assert exc_info.value.fields == ["items"]

    async def test_unavailable_product(self, order_service, mock_catalog):
        mock_catalog.add_product("prod_lobster", "1200.00", category="Seafood", available=False)

        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(make_create_request(items=[make_item("prod_lobster", 1)]))

        assert exc_info.value.fields == ["items[0].target"]

    async def test_discount_larger_than_line(self, order_service):
        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(make_create_request(items=[make_item("prod_soup", 1, discount="151")]))

        assert exc_info.value.fields == ["items[0].discount"]

    async def test_occupied_table_rejected(self, order_service):
        await order_service.create_order(make_create_request())

        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(make_create_request())

        assert exc_info.value.fields == ["table_id"]

    async def test_takeout_cannot_take_a_table(self, order_service):
        with pytest.raises(ValidationError) as exc_info:
            await order_service.create_order(make_create_request(order_type=OrderType.TAKEOUT))

        assert exc_info.value.fields == ["table_id"]

    async def test_stock_exhausted_leaves_table_free(self, order_service, store):
        with pytest.raises(StockExhaustedError):
            await order_service.create_order(make_create_request(items=[make_item("prod_fish", 9)]))

        assert (await store.load_table("tbl_2")).state == TableState.FREE

    async def test_no_table_releases_hold(self, order_service, stock_ledger):
        with pytest.raises(NoTableAvailableError) as exc_info:
            await order_service.create_order(make_create_request(table_id=None, party_size=9))

        assert exc_info.value.estimated_wait_minutes == 75
        assert stock_ledger.held_quantity("prod_steak") == 0

    async def test_price_snapshot_survives_catalog_change(self, order_service, mock_catalog):
        order = await order_service.create_order(make_create_request())
        mock_catalog.set_price("prod_steak", "900.00")

        reloaded = await order_service.get_order(order.order_id)

        assert reloaded.lines[0].unit_price == Decimal("500.00")

    async def test_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            await order_service.get_order("ord_missing")


class TestPreview:

    async def test_preview_has_no_side_effects(self, order_service, stock_ledger, store):
        preview = await order_service.preview_order(make_create_request(items=[make_item("prod_flan", 2)]))

        assert preview.valid is True
        assert preview.totals.subtotal == Decimal("240.00")
        assert len(preview.low_stock_warnings) == 1
        assert stock_ledger.held_quantity("prod_flan") == 0
        assert (await store.load_table("tbl_2")).state == TableState.FREE

    async def test_preview_reports_shortage(self, order_service):
        preview = await order_service.preview_order(make_create_request(items=[make_item("prod_flan", 4)]))

        assert preview.valid is False
        assert preview.violations[0].field == "items"


class TestModifyItems:

    async def test_modify_within_window(self, order_service, stock_ledger, clock, mock_event_bus):
        order = await order_service.create_order(make_create_request())
        clock.advance(minutes=5)

        modified = await order_service.modify_items(order.order_id, [make_item("prod_soup", 1)], staff_id="staff_1")

        assert modified.total == Decimal("177.00")
        assert modified.discount == Decimal("0.00")
        assert modified.reservation_id != order.reservation_id
        assert stock_ledger.held_quantity("prod_steak") == 0
        assert stock_ledger.held_quantity("prod_soup") == 1
        mock_event_bus.assert_event_published("order.items_modified", {"order_id": order.order_id})

    async def test_modify_after_window_fails(self, order_service, clock):
        order = await order_service.create_order(make_create_request())
        clock.advance(minutes=15)

        with pytest.raises(IllegalStateError) as exc_info:
            await order_service.modify_items(order.order_id, [make_item("prod_soup", 1)])

        assert exc_info.value.fields == ["created_at"]
        unchanged = await order_service.get_order(order.order_id)
        assert unchanged.total == order.total
        assert [line.line_id for line in unchanged.lines] == [line.line_id for line in order.lines]

    async def test_modify_only_pending(self, order_service):
        order = await order_service.create_order(make_create_request())
        await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        with pytest.raises(IllegalStateError):
            await order_service.modify_items(order.order_id, [make_item("prod_soup", 1)])

    async def test_failed_rehold_keeps_order(self, order_service, stock_ledger):
        order = await order_service.create_order(make_create_request(items=[make_item("prod_fish", 2)]))

        with pytest.raises(StockExhaustedError):
            await order_service.modify_items(order.order_id, [make_item("prod_fish", 9)])

        unchanged = await order_service.get_order(order.order_id)
        assert unchanged.reservation_id == order.reservation_id
        assert stock_ledger.held_quantity("prod_fish") == 2


class TestStateMachine:

    async def test_happy_path_to_invoiced(self, order_service, store, mock_notifier):
        order = await order_service.create_order(make_create_request())

        result = await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)
        assert result.previous_state == OrderState.PENDING
        assert result.preparation_progress == 50
        assert await on_hand(store, "prod_steak") == 18

        invoiced = await advance_to(order_service, order.order_id, OrderState.INVOICED)
        await order_service.flush_notifications()

        assert invoiced.state == OrderState.INVOICED
        assert [c.to_state for c in invoiced.history] == [OrderState.PENDING] + LIFECYCLE
        assert (await store.load_table("tbl_2")).state == TableState.FREE
        assert mock_notifier.states_for(order.order_id) == [
            "Pending", "InPreparation", "Ready", "Delivered", "Invoiced",
        ]

    async def test_skipping_states_fails(self, order_service):
        order = await order_service.create_order(make_create_request())

        with pytest.raises(StateTransitionError):
            await order_service.change_state(order.order_id, OrderState.READY)

        assert (await order_service.get_order(order.order_id)).state == OrderState.PENDING

    @pytest.mark.parametrize("target", list(OrderState))
    async def test_terminal_states_accept_nothing(self, order_service, target):
        order = await order_service.create_order(make_create_request())
        await advance_to(order_service, order.order_id, OrderState.INVOICED)

        with pytest.raises(StateTransitionError):
            await order_service.change_state(order.order_id, target)

    async def test_accepts_state_values(self, order_service):
        order = await order_service.create_order(make_create_request())

        result = await order_service.change_state(order.order_id, "InPreparation")

        assert result.order.state == OrderState.IN_PREPARATION

    async def test_expired_hold_blocks_preparation_until_renewed(self, order_service, store, clock):
        order = await order_service.create_order(make_create_request())
        clock.advance(minutes=16)

        with pytest.raises(ReservationExpiredError):
            await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)
        assert (await order_service.get_order(order.order_id)).state == OrderState.PENDING

        renewed = await order_service.renew_reservation(order.order_id)
        result = await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        assert renewed.reservation_id != order.reservation_id
        assert result.order.state == OrderState.IN_PREPARATION
        assert await on_hand(store, "prod_steak") == 18

    async def test_delivery_signals_ready_for_billing(self, order_service, mock_event_bus):
        order = await order_service.create_order(make_create_request())

        await advance_to(order_service, order.order_id, OrderState.DELIVERED)

        mock_event_bus.assert_event_published("table.ready_for_billing", {"table_id": "tbl_2"})

    async def test_state_changes_are_published(self, order_service, mock_event_bus):
        order = await order_service.create_order(make_create_request())

        await order_service.change_state(order.order_id, OrderState.IN_PREPARATION, staff_id="staff_kitchen")

        mock_event_bus.assert_event_published(
            "order.state_changed",
            {"order_id": order.order_id, "old_state": "Pending", "new_state": "InPreparation"},
        )

    async def test_notifier_failure_does_not_block(self, order_service, mock_notifier):
        mock_notifier.set_error(RuntimeError("push gateway down"))

        order = await order_service.create_order(make_create_request())
        result = await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        assert result.order.state == OrderState.IN_PREPARATION


class TestCancelOrder:

    async def test_cancel_pending_refunds_total(self, order_service, stock_ledger, store, mock_event_bus):
        order = await order_service.create_order(make_create_request())

        result = await order_service.cancel_order(order.order_id, "customer left")

        assert result.refund_amount == Decimal("1121.00")
        assert result.order.state == OrderState.CANCELLED
        assert "Cancelled: customer left" in result.order.notes
        assert stock_ledger.held_quantity("prod_steak") == 0
        assert await on_hand(store, "prod_steak") == 20
        assert (await store.load_table("tbl_2")).state == TableState.FREE
        mock_event_bus.assert_event_published("order.canceled", {"order_id": order.order_id})

    async def test_cancel_in_preparation_restores_stock_without_refund(self, order_service, store):
        order = await order_service.create_order(make_create_request())
        await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)
        assert await on_hand(store, "prod_steak") == 18

        result = await order_service.cancel_order(order.order_id, "kitchen error")

        assert result.refund_amount == Decimal("0.00")
        assert await on_hand(store, "prod_steak") == 20

    async def test_cancel_ready_order_fails(self, order_service):
        order = await order_service.create_order(make_create_request())
        await advance_to(order_service, order.order_id, OrderState.READY)

        with pytest.raises(StateTransitionError):
            await order_service.cancel_order(order.order_id, "too late")

    async def test_reason_required(self, order_service):
        order = await order_service.create_order(make_create_request())

        with pytest.raises(ValidationError):
            await order_service.cancel_order(order.order_id, "  ")


class TestConcurrentWrites:

    async def test_stale_copy_is_rejected_by_the_store(self, order_service, store):
        order = await order_service.create_order(make_create_request())
        stale = await store.load_order(order.order_id)
        await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        with pytest.raises(ConcurrentModificationError):
            await store.save_order(stale.model_copy(update={"state": OrderState.CANCELLED}))

        assert (await store.load_order(order.order_id)).state == OrderState.IN_PREPARATION

    async def test_transition_from_stale_read_fails(self, fulfillment, order_service, store, monkeypatch):
        order = await order_service.create_order(make_create_request())
        stale = await store.load_order(order.order_id)
        await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)
        fresh_load = store.load_order

        async def load_stale(order_id):
            return stale.model_copy(deep=True)

        monkeypatch.setattr(store, "load_order", load_stale)
        result = await fulfillment.cancel_order(order.order_id, "double booked")
        monkeypatch.setattr(store, "load_order", fresh_load)

        assert result.success is False
        assert result.error.kind == ErrorKind.CONCURRENT_MODIFICATION
        assert (await store.load_order(order.order_id)).state == OrderState.IN_PREPARATION
        assert await on_hand(store, "prod_steak") == 18

    async def test_concurrent_transitions_are_serialized(self, order_service, store, monkeypatch):
        order = await order_service.create_order(make_create_request())
        fresh_load = store.load_order

        async def yielding_load(order_id):
            await asyncio.sleep(0)
            return await fresh_load(order_id)

        monkeypatch.setattr(store, "load_order", yielding_load)
        results = await asyncio.gather(
            order_service.change_state(order.order_id, OrderState.IN_PREPARATION),
            order_service.change_state(order.order_id, OrderState.IN_PREPARATION),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], StateTransitionError)
        assert await on_hand(store, "prod_steak") == 18
        assert (await store.load_order(order.order_id)).version == succeeded[0].order.version


class TestResourceCleanup:

    async def test_cancelled_orders_leave_no_reservations_or_locks(self, order_service, stock_ledger):
        for _ in range(20):
            order = await order_service.create_order(make_create_request())
            await order_service.cancel_order(order.order_id, "customer left")

        assert stock_ledger.reservation_count == 0
        assert len(order_service._locks) == 0

    async def test_invoiced_order_releases_its_reservation(self, order_service, stock_ledger):
        order = await order_service.create_order(make_create_request())

        await advance_to(order_service, order.order_id, OrderState.INVOICED)

        assert stock_ledger.get_reservation(order.reservation_id) is None
        assert len(order_service._locks) == 0

    async def test_evicted_hold_blocks_preparation_until_renewed(self, order_service, stock_ledger, store, clock):
        order = await order_service.create_order(make_create_request())
        clock.advance(minutes=16)
        stock_ledger.purge_expired()

        with pytest.raises(ReservationExpiredError):
            await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        await order_service.renew_reservation(order.order_id)
        result = await order_service.change_state(order.order_id, OrderState.IN_PREPARATION)

        assert result.order.state == OrderState.IN_PREPARATION
        assert await on_hand(store, "prod_steak") == 18

    async def test_cancel_after_hold_was_evicted(self, order_service, stock_ledger, store, clock):
        order = await order_service.create_order(make_create_request())
        clock.advance(minutes=16)
        stock_ledger.purge_expired()

        result = await order_service.cancel_order(order.order_id, "customer left")

        assert result.order.state == OrderState.CANCELLED
        assert (await store.load_table("tbl_2")).state == TableState.FREE


class TestCreateFailureCompensation:

    @pytest.fixture
    def failing_save(self, store, monkeypatch):
        async def save_order(order):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(store, "save_order", save_order)

    async def test_reserved_table_stays_reserved(self, order_service, table_service, store, stock_ledger, failing_save):
        await table_service.set_table_state("tbl_2", TableState.RESERVED, reason="evening booking")

        with pytest.raises(RuntimeError):
            await order_service.create_order(make_create_request())

        assert (await store.load_table("tbl_2")).state == TableState.RESERVED
        assert stock_ledger.held_quantity("prod_steak") == 0
        assert await store.list_occupancy_records() == []

    async def test_assigned_table_returns_to_free(self, order_service, store, failing_save):
        with pytest.raises(RuntimeError):
            await order_service.create_order(make_create_request(table_id=None, party_size=5))

        assert (await store.load_table("tbl_3")).state == TableState.FREE
        assert await store.list_occupancy_records() == []
