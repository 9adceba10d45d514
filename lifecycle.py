"""
OrderLifecycleManager: admission, service and payment of orders

Responsibilities:
- Admit new orders into the ActiveOrderQueue (refused when it is full)
- Serve the oldest order, payment, and rehydration after a restart
- Delegate durability to an OrderStore, preferring availability: a failed
  store write is reported on the result, never rolled back in memory

Lifecycle methods return a LifecycleResult instead of raising, so callers
can tell "queue full", "queue empty", "store down" and "illegal transition"
apart. Queries that must read the store raise PersistenceError instead.
All queue access goes through one lock; the queue itself is not thread-safe.
"""
from enum import Enum
import threading
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from pydantic import BaseModel

from database import OrderStore
from errors import IllegalTransitionError, PersistenceError
from order_queue import ActiveOrderQueue
from schemas import DailySales, DashboardSummary, MenuItem, Order, OrderItem, OrderStatus
from search import find_order_by_code, search_menu_items, search_orders
from sorting import sort_menu_items, sort_orders

logger = structlog.get_logger(__name__)


def _code_key(code: str) -> str:
    return code.strip().lower()


class FailureReason(str, Enum):
    QUEUE_FULL = "queue_full"
    QUEUE_EMPTY = "queue_empty"
    PERSISTENCE_FAILED = "persistence_failed"
    ILLEGAL_TRANSITION = "illegal_transition"
    ORDER_NOT_FOUND = "order_not_found"


class LifecycleResult(BaseModel):
    ok: bool
    order: Optional[Order] = None
    error: Optional[FailureReason] = None
    message: Optional[str] = None
    persisted: bool = False
    warning: Optional[str] = None
    count: Optional[int] = None


class OrderLifecycleManager:
    def __init__(self, store: OrderStore, queue: Optional[ActiveOrderQueue] = None) -> None:
        self.store = store
        self.queue = queue if queue is not None else ActiveOrderQueue()
        self._lock = threading.RLock()
        # orders whose last store write failed, by code; kept until a write succeeds
        self._unsynced: Dict[str, Order] = {}

    # -------------------- lifecycle --------------------

    def place_order(self, order: Order) -> LifecycleResult:
        with self._lock:
            if self.queue.is_full():
                logger.warning("Queue full, order refused", code=order.code, capacity=self.queue.capacity)
                return LifecycleResult(
                    ok=False,
                    order=order,
                    error=FailureReason.QUEUE_FULL,
                    message=f"Cannot accept more than {self.queue.capacity} active orders.",
                )
            warning = self._save(order)
            # capacity checked above under the same lock
            self.queue.enqueue(order)
            logger.info("Order queued", code=order.code, customer=order.customer_name,
                        total=order.total, queue_size=self.queue.size(), persisted=warning is None)
            return LifecycleResult(ok=True, order=order, persisted=warning is None, warning=warning)

    def process_next(self) -> LifecycleResult:
        """Serve the order at the head of the queue.

        The order always leaves the queue, even when the store update fails.
        A head that is already completed is dropped and reported as an
        illegal transition.
        """
        with self._lock:
            head = self.queue.peek()
            if head is None:
                return LifecycleResult(ok=False, error=FailureReason.QUEUE_EMPTY, message="No active orders.")
            try:
                head.mark_in_progress()
            except IllegalTransitionError as exc:
                self.queue.dequeue()
                logger.warning("Dropped completed order from queue", code=head.code)
                return LifecycleResult(ok=False, order=head, error=FailureReason.ILLEGAL_TRANSITION, message=str(exc))
            order = self.queue.dequeue()

        warning = self._sync_status(order)
        logger.info("Order served", code=order.code, status=order.status.value, persisted=warning is None)
        return LifecycleResult(ok=True, order=order, persisted=warning is None, warning=warning)

    def record_payment(self, order: Order) -> LifecycleResult:
        with self._lock:
            changed = order.mark_paid()
        if not changed:
            return LifecycleResult(ok=True, order=order, persisted=True, message="Order already paid.")
        warning = self._sync_status(order)
        logger.info("Payment recorded", code=order.code, total=order.total, persisted=warning is None)
        return LifecycleResult(ok=True, order=order, persisted=warning is None, warning=warning)

    def edit_order(
        self,
        code: str,
        lines: Iterable[OrderItem],
        customer_name: Optional[str] = None,
        tax_rate: float = 0.0,
    ) -> LifecycleResult:
        """Replace the items and customer of a queued order that is still PENDING.

        Totals are recomputed; id, created_at and queue position are kept.
        Raises ValueError when ``lines`` is empty.
        """
        with self._lock:
            order = find_order_by_code(self.queue.traverse(), code)
            if order is None:
                return LifecycleResult(ok=False, error=FailureReason.ORDER_NOT_FOUND,
                                       message=f"No active order {code}.")
            if order.status is not OrderStatus.PENDING:
                return LifecycleResult(
                    ok=False,
                    order=order,
                    error=FailureReason.ILLEGAL_TRANSITION,
                    message=f"Order {order.code} is {order.status.value} and can no longer be edited.",
                )
            rebuilt = Order.from_cart(lines, customer_name, tax_rate, code=order.code)
            for field in ("customer_name", "items", "subtotal", "tax", "total"):
                setattr(order, field, getattr(rebuilt, field))

        warning = self._sync_status(order, full=True)
        logger.info("Order edited", code=order.code, total=order.total, persisted=warning is None)
        return LifecycleResult(ok=True, order=order, persisted=warning is None, warning=warning)

    def load_active_orders(self) -> LifecycleResult:
        """Replace the queue contents with the store's active orders, oldest first."""
        try:
            orders = self.store.load_active_orders()
        except PersistenceError as exc:
            logger.warning("Could not rehydrate active orders", error=str(exc))
            return LifecycleResult(ok=False, error=FailureReason.PERSISTENCE_FAILED, message=str(exc))

        with self._lock:
            self.queue.clear()
            loaded = 0
            for order in orders:
                if not self.queue.enqueue(order):
                    break
                loaded += 1
        logger.info("Active orders rehydrated", count=loaded)
        return LifecycleResult(ok=True, persisted=True, count=loaded)

    # -------------------- queries --------------------

    def active_orders(self) -> List[Order]:
        with self._lock:
            return self.queue.traverse()

    def active_count(self) -> int:
        with self._lock:
            return self.queue.size()

    def search_active(self, customer: str = "", code: str = "") -> List[Order]:
        return search_orders(self.active_orders(), customer, code)

    def search_history(
        self,
        customer: str = "",
        code: str = "",
        limit: int = 100,
        sort_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Order]:
        """Archived orders from the store matching the same rules as search_active.

        Raises PersistenceError when the store cannot be read.
        """
        history = search_orders(self.store.load_order_history(customer, code, limit), customer, code)
        if sort_by:
            history = sort_orders(history, by=sort_by, descending=descending)
        return history

    def find_order(self, code: str) -> Optional[Order]:
        """Look ``code`` up in the active queue, then among orders whose last
        store write failed, then in the store.

        Raises PersistenceError when the store has to be consulted and cannot
        be read, so "not found" and "store down" stay distinguishable.
        """
        with self._lock:
            order = find_order_by_code(self.queue.traverse(), code)
            if order is None:
                order = self._unsynced.get(_code_key(code))
        if order is not None:
            return order
        return find_order_by_code(self.store.load_order_history(code=code, limit=10), code)

    def unsynced_orders(self) -> List[Order]:
        with self._lock:
            return list(self._unsynced.values())

    def menu(self, query: str = "", sort_by: str = "name", algorithm: str = "selection") -> List[MenuItem]:
        items = search_menu_items(self.store.load_menu_items(), query)
        return sort_menu_items(items, by=sort_by, algorithm=algorithm)

    def dashboard(self, days: int = 7) -> Tuple[DashboardSummary, List[DailySales]]:
        """Today's takings plus per-day sales. Raises PersistenceError."""
        return self.store.load_summary(), self.store.load_daily_sales(days)

    # -------------------- persistence --------------------

    def _save(self, order: Order) -> Optional[str]:
        try:
            self.store.save_order(order)
        except PersistenceError as exc:
            logger.warning("Order kept in queue without durable write", code=order.code, error=str(exc))
            self._mark_unsynced(order)
            return f"Order {order.code} queued locally; save failed: {exc}"
        self._mark_synced(order)
        return None

    def _sync_status(self, order: Order, full: bool = False) -> Optional[str]:
        # an order whose first save failed has no id yet; retry the save instead
        if order.id is None:
            return self._save(order)
        with self._lock:
            stale = full or _code_key(order.code) in self._unsynced
        try:
            if stale:
                self.store.update_order(order)
            else:
                self.store.update_order_status(order.id, order.status, order.paid)
        except PersistenceError as exc:
            logger.warning("Status update not persisted", code=order.code,
                           status=order.status.value, error=str(exc))
            self._mark_unsynced(order)
            return f"Order {order.code} is {order.status.value}; store update failed: {exc}"
        self._mark_synced(order)
        return None

    def _mark_unsynced(self, order: Order) -> None:
        with self._lock:
            self._unsynced[_code_key(order.code)] = order

    def _mark_synced(self, order: Order) -> None:
        with self._lock:
            self._unsynced.pop(_code_key(order.code), None)
