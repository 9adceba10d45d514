import threading

import pytest

from errors import PersistenceError
from lifecycle import FailureReason, OrderLifecycleManager
from memory_store import InMemoryOrderStore
from schemas import OrderItem, OrderStatus


class TestPlaceOrder:
    def test_persists_then_queues(self, manager, store, make_order):
        order = make_order("A001", "Alex")
        result = manager.place_order(order)

        assert result.ok and result.persisted
        assert result.warning is None
        assert order.id is not None
        assert manager.active_orders() == [order]
        assert [o.code for o in store.load_active_orders()] == ["A001"]

    def test_queue_full_rejects_without_persisting(self, manager, store, make_order):
        for i in range(50):
            assert manager.place_order(make_order(f"F{i:03d}")).ok

        extra = make_order("F050")
        result = manager.place_order(extra)

        assert not result.ok
        assert result.error is FailureReason.QUEUE_FULL
        assert extra.id is None
        assert manager.active_count() == 50
        assert store.load_order_history(code="F050") == []

    def test_store_failure_still_queues(self, manager, store, make_order):
        store.fail_saves = True
        order = make_order("A001")
        result = manager.place_order(order)

        assert result.ok
        assert result.persisted is False
        assert "A001" in result.warning
        assert manager.active_orders() == [order]
        assert order.id is None


class TestProcessNext:
    def test_serves_in_arrival_order(self, manager, store, make_order):
        for code in ("A001", "A002", "A003"):
            manager.place_order(make_order(code))

        result = manager.process_next()

        assert result.ok and result.persisted
        assert result.order.code == "A001"
        assert result.order.status is OrderStatus.IN_PROGRESS
        assert [o.code for o in manager.active_orders()] == ["A002", "A003"]
        assert store.update_calls == [(result.order.id, OrderStatus.IN_PROGRESS, False)]

    def test_empty_queue(self, manager):
        result = manager.process_next()
        assert not result.ok
        assert result.error is FailureReason.QUEUE_EMPTY
        assert manager.active_count() == 0

    def test_dequeues_even_when_store_update_fails(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        manager.place_order(make_order("A002"))
        store.fail_updates = True

        result = manager.process_next()

        assert result.ok
        assert result.persisted is False
        assert result.warning
        assert result.order.status is OrderStatus.IN_PROGRESS
        assert [o.code for o in manager.active_orders()] == ["A002"]

    def test_unsaved_order_is_saved_on_serve(self, manager, store, make_order):
        store.fail_saves = True
        order = make_order("A001")
        manager.place_order(order)
        store.fail_saves = False

        result = manager.process_next()

        assert result.persisted
        assert order.id is not None
        assert store.update_calls == []
        stored = store.load_order_history(code="A001")
        assert stored[0].status is OrderStatus.IN_PROGRESS

    def test_completed_head_is_rejected_and_dropped(self, manager, store, make_order):
        paid_early = make_order("A001")
        manager.place_order(paid_early)
        manager.place_order(make_order("A002"))
        manager.record_payment(paid_early)
        calls_before = list(store.update_calls)

        result = manager.process_next()

        assert not result.ok
        assert result.error is FailureReason.ILLEGAL_TRANSITION
        assert result.order is paid_early
        assert paid_early.status is OrderStatus.COMPLETED
        assert store.update_calls == calls_before
        assert [o.code for o in manager.active_orders()] == ["A002"]


class TestRecordPayment:
    def test_marks_paid_and_completed(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        served = manager.process_next().order

        result = manager.record_payment(served)

        assert result.ok and result.persisted
        assert served.paid is True
        assert served.status is OrderStatus.COMPLETED
        assert store.update_calls[-1] == (served.id, OrderStatus.COMPLETED, True)
        assert store.load_active_orders() == []

    def test_second_payment_is_noop(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        served = manager.process_next().order
        manager.record_payment(served)
        calls = len(store.update_calls)

        result = manager.record_payment(served)

        assert result.ok
        assert result.error is None
        assert len(store.update_calls) == calls

    def test_store_failure_surfaces_warning(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        served = manager.process_next().order
        store.fail_updates = True

        result = manager.record_payment(served)

        assert result.ok
        assert result.persisted is False
        assert served.paid is True


class TestLoadActiveOrders:
    def test_rehydrates_in_arrival_order(self, store, make_order):
        first = OrderLifecycleManager(store)
        for code in ("A001", "A002", "A003"):
            first.place_order(make_order(code))
        first.record_payment(first.process_next().order)

        restarted = OrderLifecycleManager(store)
        result = restarted.load_active_orders()

        assert result.ok
        assert result.count == 2
        assert [o.code for o in restarted.active_orders()] == ["A002", "A003"]

    def test_replaces_existing_contents(self, manager, store, make_order):
        store.fail_saves = True
        manager.place_order(make_order("LOCAL"))
        store.fail_saves = False
        store.save_order(make_order("STORED"))

        manager.load_active_orders()

        assert [o.code for o in manager.active_orders()] == ["STORED"]

    def test_store_failure_leaves_queue_alone(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        store.fail_loads = True

        result = manager.load_active_orders()

        assert not result.ok
        assert result.error is FailureReason.PERSISTENCE_FAILED
        assert [o.code for o in manager.active_orders()] == ["A001"]


class TestQueries:
    def test_search_active(self, manager, make_order):
        manager.place_order(make_order("B101", "Taylor"))
        manager.place_order(make_order("B102", "Jordan"))
        assert [o.code for o in manager.search_active("tay", "")] == ["B101"]

    def test_search_history_sorted(self, manager, make_order):
        manager.place_order(make_order("H1", "Taylor", unit_price=3.0))
        manager.place_order(make_order("H2", "Taylor", unit_price=7.0))
        manager.place_order(make_order("H3", "Jordan", unit_price=5.0))

        history = manager.search_history("taylor", sort_by="total", descending=True)

        assert [o.code for o in history] == ["H2", "H1"]

    def test_search_history_propagates_store_failure(self, manager, store):
        store.fail_loads = True
        with pytest.raises(PersistenceError):
            manager.search_history("anyone")

    def test_find_order_prefers_active_queue(self, manager, make_order):
        order = make_order("A001")
        manager.place_order(order)
        assert manager.find_order("a001") is order

    def test_find_order_falls_back_to_store(self, manager, make_order):
        manager.place_order(make_order("A001"))
        manager.process_next()
        found = manager.find_order("A001")
        assert found is not None
        assert found.status is OrderStatus.IN_PROGRESS

    def test_find_order_unknown(self, manager):
        assert manager.find_order("NOPE") is None

    def test_find_order_propagates_store_failure(self, manager, store):
        store.fail_loads = True
        with pytest.raises(PersistenceError):
            manager.find_order("A001")

    def test_find_order_in_queue_needs_no_store(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        store.fail_loads = True
        assert manager.find_order("A001").code == "A001"

    def test_menu_search_and_sort(self, manager):
        assert [m.name for m in manager.menu("coffee", sort_by="price")] == ["Espresso", "Latte"]
        assert [m.name for m in manager.menu()] == ["Espresso", "Green Tea", "Latte"]


class TestUnsyncedOrders:
    def test_served_order_survives_store_outage(self, manager, store, make_order):
        store.fail_saves = True
        manager.place_order(make_order("A001"))
        served = manager.process_next()
        assert served.ok and served.persisted is False

        found = manager.find_order("a001")
        assert found is served.order

        result = manager.record_payment(found)
        assert result.ok
        assert found.paid is True
        assert [o.code for o in manager.unsynced_orders()] == ["A001"]

    def test_successful_retry_clears_entry(self, manager, store, make_order):
        store.fail_saves = True
        manager.place_order(make_order("A001"))
        served = manager.process_next().order
        store.fail_saves = False

        result = manager.record_payment(served)

        assert result.persisted is True
        assert served.id is not None
        assert manager.unsynced_orders() == []
        assert manager.find_order("A001").status is OrderStatus.COMPLETED

    def test_failed_status_update_rewrites_whole_order_later(self, manager, store, make_order):
        manager.place_order(make_order("A001"))
        store.fail_updates = True
        served = manager.process_next().order
        assert manager.unsynced_orders() == [served]
        store.fail_updates = False

        manager.record_payment(served)

        assert store.full_updates == ["A001"]
        assert manager.unsynced_orders() == []
        assert store.load_order_history(code="A001")[0].paid is True


class TestEditOrder:
    def _lines(self, quantity=2, unit_price=3.25):
        return [OrderItem(item_code="ESP01", item_name="Espresso", quantity=quantity, unit_price=unit_price)]

    def test_rebuilds_totals_and_keeps_identity(self, manager, store, make_order):
        original = make_order("A001", "Alex")
        manager.place_order(original)
        manager.place_order(make_order("A002"))
        order_id, created_at = original.id, original.created_at

        result = manager.edit_order("a001", self._lines(), customer_name="Sam", tax_rate=0.1)

        assert result.ok and result.persisted
        assert result.order is original
        assert original.id == order_id
        assert original.created_at == created_at
        assert original.customer_name == "Sam"
        assert original.subtotal == 6.5
        assert original.tax == 0.65
        assert original.total == 7.15
        assert [o.code for o in manager.active_orders()] == ["A001", "A002"]
        assert store.load_order_history(code="A001")[0].total == 7.15

    def test_only_pending_orders(self, manager, make_order):
        manager.place_order(make_order("A001"))
        manager.queue.peek().mark_in_progress()

        result = manager.edit_order("A001", self._lines())

        assert not result.ok
        assert result.error is FailureReason.ILLEGAL_TRANSITION

    def test_unknown_order(self, manager):
        result = manager.edit_order("NOPE", self._lines())
        assert result.error is FailureReason.ORDER_NOT_FOUND

    def test_empty_cart_rejected(self, manager, make_order):
        order = make_order("A001")
        manager.place_order(order)
        with pytest.raises(ValueError):
            manager.edit_order("A001", [])
        assert order.total == 4.5

    def test_store_failure_keeps_edit(self, manager, store, make_order):
        order = make_order("A001")
        manager.place_order(order)
        store.fail_updates = True

        result = manager.edit_order("A001", self._lines(quantity=1))

        assert result.ok
        assert result.persisted is False
        assert result.warning
        assert order.total == 3.25
        assert manager.unsynced_orders() == [order]


class TestDashboard:
    def test_summary_and_daily_sales(self, manager, make_order):
        for code in ("A001", "A002", "A003"):
            manager.place_order(make_order(code, unit_price=2.0))
        manager.record_payment(manager.process_next().order)

        summary, daily = manager.dashboard(days=3)

        assert summary.today_gross == 6.0
        assert summary.today_paid == 2.0
        assert summary.orders_in_queue == 2
        assert summary.completed_today == 1
        assert len(daily) == 1
        assert daily[0].order_count == 3
        assert daily[0].gross_total == 6.0

    def test_store_failure_propagates(self, manager, store):
        store.fail_loads = True
        with pytest.raises(PersistenceError):
            manager.dashboard()


class TestSerializedAccess:
    def test_parallel_placement_respects_capacity(self, make_order):
        manager = OrderLifecycleManager(InMemoryOrderStore())
        orders = [make_order(f"P{i:03d}") for i in range(80)]

        def place(batch):
            for o in batch:
                manager.place_order(o)

        threads = [threading.Thread(target=place, args=(orders[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert manager.active_count() == 50
        assert len(manager.active_orders()) == 50
