import os
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import settings
from database import MongoOrderStore, db
from errors import PersistenceError
from lifecycle import FailureReason, LifecycleResult, OrderLifecycleManager
from logging_config import configure_logging
from schemas import DailySales, DashboardSummary, MenuItem, Order, OrderItem

logger = structlog.get_logger(__name__)


def create_app(manager: Optional[OrderLifecycleManager] = None, tax_rate: Optional[float] = None) -> FastAPI:
    configure_logging()
    manager = manager or OrderLifecycleManager(MongoOrderStore())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # the queue keeps no durable state; rebuild it from the store
        manager.load_active_orders()
        yield

    app = FastAPI(title="Coffee Counter Order API", version="1.0.0", lifespan=lifespan)
    app.state.manager = manager
    app.state.tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    logger.info("Order API configured", tax_rate=app.state.tax_rate, capacity=manager.queue.capacity)
    return app


def get_manager(request: Request) -> OrderLifecycleManager:
    return request.app.state.manager


# ===================== Request / response models =====================
class CartItem(BaseModel):
    item_code: str
    item_name: str
    options_label: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)


class CreateOrderRequest(BaseModel):
    customer_name: Optional[str] = None
    items: List[CartItem]
    code: Optional[str] = None


class EditOrderRequest(BaseModel):
    customer_name: Optional[str] = None
    items: List[CartItem]


class OrderResponse(BaseModel):
    order: Order
    persisted: bool
    warning: Optional[str] = None
    message: Optional[str] = None


class ActiveOrdersResponse(BaseModel):
    count: int
    capacity: int
    orders: List[Order]


class DashboardResponse(BaseModel):
    summary: DashboardSummary
    daily_sales: List[DailySales]


_STATUS_FOR = {
    FailureReason.QUEUE_FULL: 409,
    FailureReason.QUEUE_EMPTY: 409,
    FailureReason.ILLEGAL_TRANSITION: 409,
    FailureReason.PERSISTENCE_FAILED: 503,
    FailureReason.ORDER_NOT_FOUND: 404,
}


def _respond(result: LifecycleResult) -> OrderResponse:
    if not result.ok:
        raise HTTPException(_STATUS_FOR[result.error], detail={"error": result.error.value, "message": result.message})
    return OrderResponse(order=result.order, persisted=result.persisted, warning=result.warning, message=result.message)


# ===================== Endpoints =====================
router = APIRouter()


@router.get("/")
def root():
    return {"message": "Coffee Counter Order API running"}


@router.get("/test")
def test_database(manager: OrderLifecycleManager = Depends(get_manager)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
        "active_orders": manager.active_count(),
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if settings.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if settings.DATABASE_NAME else "❌ Not Set"
    return response


# ===================== Orders =====================
@router.post("/orders", status_code=201, response_model=OrderResponse)
def create_order(payload: CreateOrderRequest, request: Request, manager: OrderLifecycleManager = Depends(get_manager)):
    if not payload.items:
        raise HTTPException(400, "Cart is empty")
    try:
        lines = [OrderItem(**i.model_dump()) for i in payload.items]
        order = Order.from_cart(lines, payload.customer_name, request.app.state.tax_rate, code=payload.code)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return _respond(manager.place_order(order))


@router.get("/orders/active", response_model=ActiveOrdersResponse)
def list_active_orders(manager: OrderLifecycleManager = Depends(get_manager)):
    orders = manager.active_orders()
    return ActiveOrdersResponse(count=len(orders), capacity=manager.queue.capacity, orders=orders)


@router.post("/orders/serve", response_model=OrderResponse)
def serve_next_order(manager: OrderLifecycleManager = Depends(get_manager)):
    return _respond(manager.process_next())


@router.post("/orders/{code}/pay", response_model=OrderResponse)
def pay_order(code: str, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        order = manager.find_order(code)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    if order is None:
        raise HTTPException(404, "Order not found")
    return _respond(manager.record_payment(order))


@router.put("/orders/{code}", response_model=OrderResponse)
def edit_order(code: str, payload: EditOrderRequest, request: Request, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        lines = [OrderItem(**i.model_dump()) for i in payload.items]
        result = manager.edit_order(code, lines, payload.customer_name, request.app.state.tax_rate)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return _respond(result)


@router.get("/orders/search", response_model=List[Order])
def search_active_orders(customer: str = "", code: str = "", manager: OrderLifecycleManager = Depends(get_manager)):
    return manager.search_active(customer, code)


@router.get("/orders/history", response_model=List[Order])
def order_history(
    customer: str = "",
    code: str = "",
    limit: int = Query(100, ge=1),
    sort: Optional[Literal["total", "created_at"]] = None,
    descending: bool = False,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return manager.search_history(customer, code, limit=limit, sort_by=sort, descending=descending)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))


@router.post("/admin/orders/reload")
def reload_active_orders(manager: OrderLifecycleManager = Depends(get_manager)):
    result = manager.load_active_orders()
    if not result.ok:
        raise HTTPException(503, result.message)
    return {"reloaded": result.count}


# ===================== Menu =====================
@router.get("/menu", response_model=List[MenuItem])
def list_menu(
    q: str = "",
    sort: Literal["name", "price"] = "name",
    algorithm: Literal["insertion", "selection"] = "selection",
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return manager.menu(q, sort_by=sort, algorithm=algorithm)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))


@router.post("/admin/menu", status_code=201)
def create_menu_item(payload: MenuItem, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        item_id = manager.store.save_menu_item(payload)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    return {"_id": item_id}


@router.get("/admin/menu/{code}", response_model=MenuItem)
def get_menu_item(code: str, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        item = manager.store.get_menu_item(code)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    if item is None:
        raise HTTPException(404, "Menu item not found")
    return item


@router.put("/admin/menu/{code}")
def update_menu_item(code: str, payload: MenuItem, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        ok = manager.store.update_menu_item(code, payload.model_copy(update={"code": code}))
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    if not ok:
        raise HTTPException(404, "Menu item not found")
    return {"updated": True}


@router.delete("/admin/menu/{code}")
def delete_menu_item(code: str, manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        ok = manager.store.delete_menu_item(code)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    if not ok:
        raise HTTPException(404, "Menu item not found")
    return {"deleted": True}


# ===================== Dashboard =====================
@router.get("/admin/dashboard", response_model=DashboardResponse)
def owner_dashboard(days: int = Query(7, ge=1), manager: OrderLifecycleManager = Depends(get_manager)):
    try:
        summary, daily = manager.dashboard(days)
    except PersistenceError as exc:
        raise HTTPException(503, str(exc))
    return DashboardResponse(summary=summary, daily_sales=daily)


# ===================== Schema Export for Docs =====================
@router.get("/schema")
def get_schema():
    return {
        "collections": [
            "order",
            "menu_item",
        ],
        "notes": "Order and MenuItem in schemas.py map to these MongoDB collections.",
    }


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
