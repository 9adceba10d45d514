"""
ActiveOrderQueue: bounded FIFO of in-flight orders

Design notes:
- Singly linked nodes with head/tail references and an explicit count, so
  enqueue (tail) and dequeue (head) are both O(1) with no element shifting.
- Capacity is fixed at MAX_ACTIVE_ORDERS; a full queue refuses new orders
  and is left untouched.
- Duplicate order codes are not detected here; callers keep codes unique.
- Not thread-safe. The head/tail pair is not updated atomically, so any
  shared use must go through a single owner that serializes access
  (OrderLifecycleManager holds a lock for this).
"""
from typing import Iterator, List, Optional

from errors import QueueEmptyError
from schemas import Order

MAX_ACTIVE_ORDERS = 50


class _Node:
    __slots__ = ("data", "next")

    def __init__(self, data: Order) -> None:
        self.data = data
        self.next: Optional["_Node"] = None


class ActiveOrderQueue:
    """FIFO queue of orders awaiting service, capped at 50 entries."""

    capacity = MAX_ACTIVE_ORDERS

    def __init__(self) -> None:
        self._head: Optional[_Node] = None
        self._tail: Optional[_Node] = None
        self._size = 0

    # -------------------- mutation --------------------

    def enqueue(self, order: Order) -> bool:
        """Append ``order`` at the tail.

        Returns False, without touching the queue, when it already holds
        ``capacity`` orders.
        """
        if self._size >= self.capacity:
            return False
        node = _Node(order)
        if self._tail is None:
            self._head = node
        else:
            self._tail.next = node
        self._tail = node
        self._size += 1
        return True

    def dequeue(self) -> Order:
        """Remove and return the oldest order.

        Raises QueueEmptyError when there is nothing to remove.
        """
        if self._head is None:
            raise QueueEmptyError("active order queue is empty")
        node = self._head
        self._head = node.next
        if self._head is None:
            self._tail = None
        node.next = None
        self._size -= 1
        return node.data

    def clear(self) -> None:
        self._head = None
        self._tail = None
        self._size = 0

    # -------------------- read-only --------------------

    def peek(self) -> Optional[Order]:
        return None if self._head is None else self._head.data

    def traverse(self) -> List[Order]:
        """Snapshot of the held orders, head to tail.

        The list is a copy; later enqueue/dequeue calls do not change it.
        """
        out = []
        current = self._head
        while current is not None:
            out.append(current.data)
            current = current.next
        return out

    def size(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def is_full(self) -> bool:
        return self._size >= self.capacity

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Order]:
        return iter(self.traverse())

    def __repr__(self) -> str:
        return f"<ActiveOrderQueue size={self._size}/{self.capacity}>"
