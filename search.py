"""
Linear search helpers for orders and menu items.

Every helper scans the whole sequence and keeps matches in their original
relative order. Nothing here mutates the items it is given.
"""
from typing import Callable, Iterable, List, Optional, TypeVar

from schemas import MenuItem, Order

T = TypeVar("T")


def _norm(value: Optional[str]) -> str:
    return "" if value is None else value.strip().lower()


def _lower(value: Optional[str]) -> str:
    return "" if value is None else value.lower()


def linear_search(source: Optional[Iterable[T]], predicate: Optional[Callable[[T], bool]]) -> List[T]:
    results: List[T] = []
    if source is None or predicate is None:
        return results
    for item in source:
        if predicate(item):
            results.append(item)
    return results


def search_orders(orders: Optional[Iterable[Order]], customer: Optional[str] = "", code: Optional[str] = "") -> List[Order]:
    """Orders whose customer name contains ``customer`` and, when ``code`` is
    given, whose code contains ``code``. Both comparisons ignore case."""
    c = _norm(customer)
    oc = _norm(code)
    return linear_search(
        orders,
        lambda o: c in _lower(o.customer_name) and (not oc or oc in _lower(o.code)),
    )


def search_menu_items(items: Optional[Iterable[MenuItem]], query: Optional[str] = "") -> List[MenuItem]:
    """Menu items whose code, name or category contains ``query`` (case-insensitive)."""
    q = _norm(query)
    return linear_search(
        items,
        lambda m: q in _lower(m.code) or q in _lower(m.name) or q in _lower(m.category),
    )


def find_order_by_code(orders: Optional[Iterable[Order]], code: Optional[str]) -> Optional[Order]:
    wanted = _norm(code)
    if not wanted:
        return None
    matches = linear_search(orders, lambda o: _lower(o.code) == wanted)
    return matches[0] if matches else None
