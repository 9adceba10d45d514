"""In-process OrderStore used for local runs and tests."""

from collections import defaultdict
from datetime import timedelta, timezone
from itertools import count
from typing import Dict, Iterable, List, Optional

from database import start_of_day
from errors import PersistenceError
from order_queue import MAX_ACTIVE_ORDERS
from schemas import DailySales, DashboardSummary, MenuItem, Order, OrderStatus
from search import linear_search, search_orders


class InMemoryOrderStore:
    """Keeps copies of saved orders and menu items in dicts.

    Copies go in and out so callers never share objects with the store,
    the same as with a real database.
    """

    def __init__(self, menu_items: Optional[Iterable[MenuItem]] = None) -> None:
        self._orders: Dict[str, Order] = {}
        self._menu: Dict[str, MenuItem] = {}
        self._ids = count(1)
        for item in menu_items or ():
            self.save_menu_item(item)

    def save_order(self, order: Order) -> Order:
        order.id = str(next(self._ids))
        self._orders[order.id] = order.model_copy(deep=True)
        return order

    def update_order_status(self, order_id: str, status: OrderStatus, paid: bool) -> None:
        stored = self._orders.get(order_id)
        if stored is None:
            raise PersistenceError(f"order {order_id} not found")
        stored.status = OrderStatus(status)
        stored.paid = paid

    def update_order(self, order: Order) -> None:
        if order.id not in self._orders:
            raise PersistenceError(f"order {order.id} not found")
        self._orders[order.id] = order.model_copy(deep=True)

    def load_active_orders(self) -> List[Order]:
        active = [o for o in self._orders.values() if o.is_active]
        active.sort(key=lambda o: o.created_at)
        return [o.model_copy(deep=True) for o in active[:MAX_ACTIVE_ORDERS]]

    def load_order_history(self, customer: str = "", code: str = "", limit: int = 100) -> List[Order]:
        matches = search_orders(self._orders.values(), customer, code)
        matches.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in matches[:limit]]

    # -------------------- menu --------------------

    def load_menu_items(self) -> List[MenuItem]:
        return [m.model_copy() for m in self._menu.values() if m.is_available]

    def save_menu_item(self, item: MenuItem) -> str:
        item_id = str(next(self._ids))
        self._menu[item_id] = item.model_copy()
        return item_id

    def get_menu_item(self, code: str) -> Optional[MenuItem]:
        item_id = self._menu_id(code)
        return None if item_id is None else self._menu[item_id].model_copy()

    def update_menu_item(self, code: str, item: MenuItem) -> bool:
        item_id = self._menu_id(code)
        if item_id is None:
            return False
        self._menu[item_id] = item.model_copy(update={"code": code})
        return True

    def delete_menu_item(self, code: str) -> bool:
        item_id = self._menu_id(code)
        if item_id is None:
            return False
        del self._menu[item_id]
        return True

    def _menu_id(self, code: str) -> Optional[str]:
        hits = linear_search(self._menu.items(), lambda entry: entry[1].code == code)
        return hits[0][0] if hits else None

    # -------------------- dashboard --------------------

    def load_summary(self) -> DashboardSummary:
        today = [o for o in self._orders.values() if o.created_at >= start_of_day()]
        return DashboardSummary(
            today_gross=round(sum(o.total for o in today), 2),
            today_paid=round(sum(o.total for o in today if o.paid), 2),
            orders_in_queue=sum(1 for o in self._orders.values() if o.is_active),
            completed_today=sum(1 for o in today if o.status is OrderStatus.COMPLETED),
        )

    def load_daily_sales(self, days: int = 7) -> List[DailySales]:
        since = start_of_day() - timedelta(days=max(days, 1))
        by_day: Dict = defaultdict(list)
        for order in self._orders.values():
            if order.created_at >= since:
                by_day[order.created_at.astimezone(timezone.utc).date()].append(order)
        return [
            DailySales(
                sale_date=day,
                gross_total=round(sum(o.total for o in orders), 2),
                paid_total=round(sum(o.total for o in orders if o.paid), 2),
                order_count=len(orders),
            )
            for day, orders in sorted(by_day.items(), reverse=True)
        ]
