"""
Schemas for the Coffee Counter Order System

Each Pydantic model below corresponds to a MongoDB collection where it is stored.
The collection name is the lowercase snake_case class name (e.g., MenuItem -> "menu_item").
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, field_validator, model_validator

from errors import IllegalTransitionError

WALK_IN = "Walk-in"


def _cents(value: float) -> float:
    return round(value, 2)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED})
ACTIVE_STATUSES = frozenset(set(OrderStatus) - TERMINAL_STATUSES)


class MenuItem(BaseModel):
    code: str = Field(..., description="Short item code, e.g. LAT01")
    name: str = Field(..., description="Display name")
    category: str = Field("", description="Menu section, e.g. Coffee")
    price: float = Field(..., ge=0)
    is_available: bool = True


class OrderItem(BaseModel):
    item_code: str
    item_name: str
    options_label: str = ""
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    line_total: Optional[float] = Field(None, description="quantity * unit_price, filled in when omitted")

    @field_validator("options_label", mode="before")
    @classmethod
    def _blank_options(cls, v):
        return "" if v is None else v

    @model_validator(mode="after")
    def _check_line_total(self):
        expected = _cents(self.quantity * self.unit_price)
        if self.line_total is None:
            self.line_total = expected
        elif abs(self.line_total - expected) >= 0.005:
            raise ValueError(
                f"line_total {self.line_total} does not match {self.quantity} x {self.unit_price}"
            )
        return self


class Order(BaseModel):
    id: Optional[str] = Field(None, description="Identifier assigned by the record store on save")
    code: str = Field(..., description="Human-friendly order code")
    customer_name: str = WALK_IN
    items: List[OrderItem] = []
    subtotal: float = Field(0.0, ge=0)
    tax: float = Field(0.0, ge=0)
    total: float = Field(0.0, ge=0)
    paid: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: OrderStatus = OrderStatus.PENDING

    @field_validator("customer_name", mode="before")
    @classmethod
    def _default_customer(cls, v):
        if v is None or not str(v).strip():
            return WALK_IN
        return str(v).strip()

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # MongoDB hands back naive datetimes that are already UTC
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v

    @model_validator(mode="after")
    def _check_total(self):
        if abs(self.total - (self.subtotal + self.tax)) >= 0.005:
            raise ValueError(f"total {self.total} != subtotal {self.subtotal} + tax {self.tax}")
        return self

    @classmethod
    def from_cart(
        cls,
        lines: Iterable[OrderItem],
        customer_name: Optional[str] = None,
        tax_rate: float = 0.0,
        code: Optional[str] = None,
    ) -> "Order":
        items = list(lines)
        if not items:
            raise ValueError("Cart is empty")
        subtotal = _cents(sum(i.line_total for i in items))
        tax = _cents(subtotal * tax_rate)
        return cls(
            code=code or generate_order_code(),
            customer_name=customer_name,
            items=items,
            subtotal=subtotal,
            tax=tax,
            total=_cents(subtotal + tax),
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def mark_in_progress(self) -> None:
        """Serve transition. Re-serving an IN_PROGRESS order leaves it unchanged."""
        if self.status.is_terminal:
            raise IllegalTransitionError(f"order {self.code} is already {self.status.value}")
        self.status = OrderStatus.IN_PROGRESS

    def mark_paid(self) -> bool:
        """Settle the order. Returns False when it was already paid."""
        if self.paid and self.status.is_terminal:
            return False
        self.paid = True
        self.status = OrderStatus.COMPLETED
        return True

    def summary_line(self) -> str:
        return f"{self.code} • {self.customer_name} • {self.total:.2f} • {self.status.value}"


class DailySales(BaseModel):
    sale_date: date
    gross_total: float = 0.0
    paid_total: float = 0.0
    order_count: int = 0


class DashboardSummary(BaseModel):
    today_gross: float = Field(0.0, description="Sum of totals for orders created today (UTC)")
    today_paid: float = Field(0.0, description="Paid part of today_gross")
    orders_in_queue: int = Field(0, description="Stored orders still PENDING or IN_PROGRESS")
    completed_today: int = 0


def generate_order_code() -> str:
    return f"ORD-{str(ObjectId())[-6:].upper()}"


"""
Notes:
- Orders live in the "order" collection, menu items in "menu_item".
- Status values are stored as their string names.
- DashboardSummary and DailySales are computed from "order", never stored.
"""
