"""
Database Helper Functions

MongoDB helpers plus the record store the order lifecycle persists through.
Connection settings come from DATABASE_URL / DATABASE_NAME (see settings.py).
"""

from datetime import date, datetime, time, timedelta, timezone
import re
from typing import Any, Dict, List, Optional, Protocol, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ValidationError
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import settings
from errors import PersistenceError
from order_queue import MAX_ACTIVE_ORDERS
from schemas import ACTIVE_STATUSES, DailySales, DashboardSummary, MenuItem, Order, OrderStatus

logger = structlog.get_logger(__name__)

ORDER_COLLECTION = "order"
MENU_COLLECTION = "menu_item"

_client = None
db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=3000)
    db = _client[settings.DATABASE_NAME]


def _ensure_db(database: Optional[Database]) -> Database:
    if database is None:
        raise PersistenceError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return database


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


# CRUD helpers

def create_document(database: Optional[Database], collection_name: str, data: Union[BaseModel, dict]) -> str:
    database = _ensure_db(database)
    payload = _to_dict(data)
    now = datetime.now(timezone.utc)
    payload.setdefault('created_at', now)
    payload['updated_at'] = now
    result = database[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(database: Optional[Database], collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    database = _ensure_db(database)
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


def get_document(database: Optional[Database], collection_name: str, filter_dict: dict) -> Optional[dict]:
    database = _ensure_db(database)
    return serialize_doc(database[collection_name].find_one(filter_dict))


def update_document(database: Optional[Database], collection_name: str, _id: str, update_data: Dict[str, Any]) -> bool:
    """Returns True when a document with ``_id`` exists, changed or not."""
    return update_document_where(database, collection_name, {"_id": ObjectId(_id)}, update_data)


def update_document_where(database: Optional[Database], collection_name: str, filter_dict: dict, update_data: Dict[str, Any]) -> bool:
    database = _ensure_db(database)
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = datetime.now(timezone.utc)
    result = database[collection_name].update_one(filter_dict, update)
    return result.matched_count > 0


def delete_document(database: Optional[Database], collection_name: str, filter_dict: dict) -> bool:
    database = _ensure_db(database)
    result = database[collection_name].delete_one(filter_dict)
    return result.deleted_count > 0


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d


def start_of_day(now: Optional[datetime] = None) -> datetime:
    """UTC midnight of ``now`` (default: today). Dashboard windows start here."""
    now = now or datetime.now(timezone.utc)
    return datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def order_to_document(order: Order) -> dict:
    payload = order.model_dump(exclude={"id"})
    payload["status"] = order.status.value
    return payload


def document_to_order(doc: dict) -> Order:
    data = dict(doc)
    data["id"] = data.pop("_id", None)
    data.pop("updated_at", None)
    return Order.model_validate(data)


# Record store

class OrderStore(Protocol):
    """What the order lifecycle needs from persistent storage."""

    def save_order(self, order: Order) -> Order: ...

    def update_order_status(self, order_id: str, status: OrderStatus, paid: bool) -> None: ...

    def load_active_orders(self) -> List[Order]: ...

    def load_order_history(self, customer: str = "", code: str = "", limit: int = 100) -> List[Order]: ...

    def load_menu_items(self) -> List[MenuItem]: ...

    def save_menu_item(self, item: MenuItem) -> str: ...

    def get_menu_item(self, code: str) -> Optional[MenuItem]: ...

    def update_menu_item(self, code: str, item: MenuItem) -> bool: ...

    def delete_menu_item(self, code: str) -> bool: ...

    def update_order(self, order: Order) -> None: ...

    def load_summary(self) -> DashboardSummary: ...

    def load_daily_sales(self, days: int = 7) -> List[DailySales]: ...


class MongoOrderStore:
    """OrderStore backed by the "order" and "menu_item" collections."""

    def __init__(self, database: Optional[Database] = None) -> None:
        self._db = db if database is None else database

    @property
    def available(self) -> bool:
        return self._db is not None

    def save_order(self, order: Order) -> Order:
        try:
            order.id = create_document(self._db, ORDER_COLLECTION, order_to_document(order))
        except PyMongoError as exc:
            raise PersistenceError(f"could not save order {order.code}: {exc}") from exc
        logger.debug("Order saved", code=order.code, order_id=order.id)
        return order

    def update_order_status(self, order_id: str, status: OrderStatus, paid: bool) -> None:
        try:
            found = update_document(
                self._db, ORDER_COLLECTION, order_id, {"status": OrderStatus(status).value, "paid": paid}
            )
        except InvalidId as exc:
            raise PersistenceError(f"invalid order id {order_id!r}") from exc
        except PyMongoError as exc:
            raise PersistenceError(f"could not update order {order_id}: {exc}") from exc
        if not found:
            raise PersistenceError(f"order {order_id} not found")

    def load_active_orders(self) -> List[Order]:
        docs = self._find(
            ORDER_COLLECTION,
            {"status": {"$in": sorted(s.value for s in ACTIVE_STATUSES)}},
            limit=MAX_ACTIVE_ORDERS,
            sort=[("created_at", ASCENDING)],
        )
        return [self._order(doc) for doc in docs]

    def load_order_history(self, customer: str = "", code: str = "", limit: int = 100) -> List[Order]:
        filter_q: Dict[str, Any] = {}
        if customer:
            filter_q["customer_name"] = {"$regex": re.escape(customer.strip()), "$options": "i"}
        if code:
            filter_q["code"] = {"$regex": re.escape(code.strip()), "$options": "i"}
        docs = self._find(ORDER_COLLECTION, filter_q, limit=limit, sort=[("created_at", DESCENDING)])
        return [self._order(doc) for doc in docs]

    def load_menu_items(self) -> List[MenuItem]:
        docs = self._find(MENU_COLLECTION, {"is_available": True})
        return [MenuItem.model_validate(doc) for doc in docs]

    def save_menu_item(self, item: MenuItem) -> str:
        try:
            return create_document(self._db, MENU_COLLECTION, item)
        except PyMongoError as exc:
            raise PersistenceError(f"could not save menu item {item.code}: {exc}") from exc

    def get_menu_item(self, code: str) -> Optional[MenuItem]:
        try:
            doc = get_document(self._db, MENU_COLLECTION, {"code": code})
        except PyMongoError as exc:
            raise PersistenceError(f"could not read menu item {code}: {exc}") from exc
        return MenuItem.model_validate(doc) if doc else None

    def update_menu_item(self, code: str, item: MenuItem) -> bool:
        # the code identifies the item and is never rewritten
        fields = item.model_dump(exclude={"code"})
        try:
            return update_document_where(self._db, MENU_COLLECTION, {"code": code}, fields)
        except PyMongoError as exc:
            raise PersistenceError(f"could not update menu item {code}: {exc}") from exc

    def delete_menu_item(self, code: str) -> bool:
        try:
            return delete_document(self._db, MENU_COLLECTION, {"code": code})
        except PyMongoError as exc:
            raise PersistenceError(f"could not delete menu item {code}: {exc}") from exc

    def update_order(self, order: Order) -> None:
        """Rewrite every stored field of an already saved order."""
        if order.id is None:
            raise PersistenceError(f"order {order.code} has never been saved")
        try:
            found = update_document(self._db, ORDER_COLLECTION, order.id, order_to_document(order))
        except InvalidId as exc:
            raise PersistenceError(f"invalid order id {order.id!r}") from exc
        except PyMongoError as exc:
            raise PersistenceError(f"could not update order {order.code}: {exc}") from exc
        if not found:
            raise PersistenceError(f"order {order.id} not found")

    def load_summary(self) -> DashboardSummary:
        today = start_of_day()
        pipeline = [
            {"$match": {"created_at": {"$gte": today}}},
            {"$group": {
                "_id": None,
                "gross": {"$sum": "$total"},
                "paid": {"$sum": {"$cond": ["$paid", "$total", 0]}},
                "completed": {"$sum": {"$cond": [{"$eq": ["$status", OrderStatus.COMPLETED.value]}, 1, 0]}},
            }},
        ]
        try:
            database = _ensure_db(self._db)
            rows = list(database[ORDER_COLLECTION].aggregate(pipeline))
            in_queue = database[ORDER_COLLECTION].count_documents(
                {"status": {"$in": sorted(s.value for s in ACTIVE_STATUSES)}}
            )
        except PyMongoError as exc:
            raise PersistenceError(f"could not build dashboard summary: {exc}") from exc
        row = rows[0] if rows else {}
        return DashboardSummary(
            today_gross=round(row.get("gross", 0.0), 2),
            today_paid=round(row.get("paid", 0.0), 2),
            orders_in_queue=in_queue,
            completed_today=row.get("completed", 0),
        )

    def load_daily_sales(self, days: int = 7) -> List[DailySales]:
        """Per-day totals from ``days`` days ago through today, newest first."""
        since = start_of_day() - timedelta(days=max(days, 1))
        pipeline = [
            {"$match": {"created_at": {"$gte": since}}},
            {"$group": {
                "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$created_at"}},
                "gross": {"$sum": "$total"},
                "paid": {"$sum": {"$cond": ["$paid", "$total", 0]}},
                "count": {"$sum": 1},
            }},
            {"$sort": {"_id": DESCENDING}},
        ]
        try:
            rows = list(_ensure_db(self._db)[ORDER_COLLECTION].aggregate(pipeline))
        except PyMongoError as exc:
            raise PersistenceError(f"could not build daily sales: {exc}") from exc
        return [
            DailySales(
                sale_date=date.fromisoformat(row["_id"]),
                gross_total=round(row["gross"], 2),
                paid_total=round(row["paid"], 2),
                order_count=row["count"],
            )
            for row in rows
        ]

    def _find(self, collection: str, filter_q: dict, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
        try:
            return get_documents(self._db, collection, filter_q, limit=limit, sort=sort)
        except PyMongoError as exc:
            raise PersistenceError(f"could not read {collection}: {exc}") from exc

    @staticmethod
    def _order(doc: dict) -> Order:
        try:
            return document_to_order(doc)
        except ValidationError as exc:
            raise PersistenceError(f"malformed order document {doc.get('_id')}: {exc}") from exc
