import pytest
from fastapi.testclient import TestClient

from errors import PersistenceError
from lifecycle import OrderLifecycleManager
from memory_store import InMemoryOrderStore
from order_queue import ActiveOrderQueue
from schemas import MenuItem, Order, OrderItem


class FlakyStore(InMemoryOrderStore):
    """In-memory store whose operations can be switched to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_saves = False
        self.fail_updates = False
        self.fail_loads = False
        self.update_calls = []
        self.full_updates = []

    def save_order(self, order):
        if self.fail_saves:
            raise PersistenceError("connection refused")
        return super().save_order(order)

    def update_order_status(self, order_id, status, paid):
        self.update_calls.append((order_id, status, paid))
        if self.fail_updates:
            raise PersistenceError("connection refused")
        return super().update_order_status(order_id, status, paid)

    def update_order(self, order):
        self.full_updates.append(order.code)
        if self.fail_updates:
            raise PersistenceError("connection refused")
        return super().update_order(order)

    def load_active_orders(self):
        if self.fail_loads:
            raise PersistenceError("connection refused")
        return super().load_active_orders()

    def load_order_history(self, customer="", code="", limit=100):
        if self.fail_loads:
            raise PersistenceError("connection refused")
        return super().load_order_history(customer, code, limit)

    def get_menu_item(self, code):
        if self.fail_loads:
            raise PersistenceError("connection refused")
        return super().get_menu_item(code)

    def load_summary(self):
        if self.fail_loads:
            raise PersistenceError("connection refused")
        return super().load_summary()


@pytest.fixture()
def make_order():
    def _make(code, customer="Walk-in", unit_price=4.50, quantity=1):
        line = OrderItem(item_code="LAT01", item_name="Latte", quantity=quantity, unit_price=unit_price)
        return Order.from_cart([line], customer_name=customer, code=code)

    return _make


@pytest.fixture()
def menu_items():
    return [
        MenuItem(code="LAT01", name="Latte", category="Coffee", price=4.50),
        MenuItem(code="ESP01", name="Espresso", category="Coffee", price=3.25),
        MenuItem(code="TEA01", name="Green Tea", category="Tea", price=3.75),
    ]


@pytest.fixture()
def store(menu_items):
    return FlakyStore(menu_items)


@pytest.fixture()
def queue():
    return ActiveOrderQueue()


@pytest.fixture()
def manager(store, queue):
    return OrderLifecycleManager(store, queue)


@pytest.fixture()
def client(manager):
    from main import create_app

    app = create_app(manager, tax_rate=0.0)
    with TestClient(app) as c:
        yield c
