"""
In-place comparison sorts used for display listings.

Both algorithms reorder the given list in place and return None, like
``list.sort``. The ordering is expressed by a ``key`` function whose results
are compared with ``<`` / ``>``; ``reverse=True`` flips the comparison.

insertion_sort is stable. selection_sort is not: equal keys may swap.
Neither touches the active queue; callers sort a snapshot.
"""
from typing import Any, Callable, List, MutableSequence, Optional, Sequence, TypeVar

from schemas import MenuItem, Order

T = TypeVar("T")
KeyFunc = Optional[Callable[[Any], Any]]


def _identity(x):
    return x


def _after(a, b, reverse: bool) -> bool:
    """True when ``a`` belongs strictly after ``b``."""
    return a < b if reverse else a > b


def insertion_sort(seq: Optional[MutableSequence[T]], key: KeyFunc = None, reverse: bool = False) -> None:
    if seq is None:
        return
    key = key or _identity
    for i in range(1, len(seq)):
        current = seq[i]
        current_key = key(current)
        j = i - 1
        # shift right while the left neighbour is greater
        while j >= 0 and _after(key(seq[j]), current_key, reverse):
            seq[j + 1] = seq[j]
            j -= 1
        seq[j + 1] = current


def selection_sort(seq: Optional[MutableSequence[T]], key: KeyFunc = None, reverse: bool = False) -> None:
    if seq is None:
        return
    key = key or _identity
    n = len(seq)
    for i in range(n - 1):
        best = i
        for j in range(i + 1, n):
            if _after(key(seq[best]), key(seq[j]), reverse):
                best = j
        if best != i:
            seq[i], seq[best] = seq[best], seq[i]


ALGORITHMS = {
    "insertion": insertion_sort,
    "selection": selection_sort,
}

MENU_SORT_KEYS = {
    "name": lambda m: m.name.lower(),
    "price": lambda m: m.price,
}

ORDER_SORT_KEYS = {
    "total": lambda o: o.total,
    "created_at": lambda o: o.created_at,
}


def _algorithm(name: str):
    try:
        return ALGORITHMS[name]
    except KeyError:
        raise ValueError(f"unknown sort algorithm: {name!r}") from None


def sort_menu_items(items: Sequence[MenuItem], by: str = "name", algorithm: str = "selection") -> List[MenuItem]:
    """Return a sorted copy of ``items`` ordered by name or price, ascending."""
    if by not in MENU_SORT_KEYS:
        raise ValueError(f"cannot sort menu items by {by!r}")
    sort = _algorithm(algorithm)
    out = list(items or [])
    sort(out, key=MENU_SORT_KEYS[by])
    return out


def sort_orders(
    orders: Sequence[Order],
    by: str = "created_at",
    descending: bool = False,
    algorithm: str = "insertion",
) -> List[Order]:
    """Return a sorted copy of ``orders`` ordered by total or creation time."""
    if by not in ORDER_SORT_KEYS:
        raise ValueError(f"cannot sort orders by {by!r}")
    sort = _algorithm(algorithm)
    out = list(orders or [])
    sort(out, key=ORDER_SORT_KEYS[by], reverse=descending)
    return out
