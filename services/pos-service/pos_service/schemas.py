from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    ACTIVE = "active"
    HELD = "held"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


class DateRange(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class MenuItem(BaseModel):
    id: str
    name: str
    price: float = Field(..., ge=0)
    tax_rate: float = Field(default=0.0, ge=0, description="Percent, e.g. 5 for 5%.")
    is_available: bool = True


class LineItem(BaseModel):
    """A cart line. Immutable; the cart swaps in a copy on every change."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    name: str
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)
    tax_rate: float = Field(default=0.0, ge=0)

    @computed_field
    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class OrderItem(BaseModel):
    item_id: Optional[str] = None
    item_name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    tax_rate: float = Field(default=0.0, ge=0)

    @computed_field
    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    @classmethod
    def from_line(cls, line: LineItem) -> "OrderItem":
        return cls(
            item_id=line.item_id,
            item_name=line.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            tax_rate=line.tax_rate,
        )


class OrderSummary(BaseModel):
    id: int
    order_number: int
    status: OrderStatus = OrderStatus.ACTIVE
    order_type: OrderType = OrderType.DINE_IN
    subtotal: float = 0.0
    tax_amount: float = 0.0
    discount_amount: float = Field(default=0.0, ge=0)
    total_amount: float = 0.0
    payment_method: Optional[PaymentMethod] = None
    customer_name: str = ""
    customer_phone: str = ""
    table_number: str = ""
    notes: str = ""
    user_id: Optional[int] = None
    created_at: dt.datetime


class Order(OrderSummary):
    items: List[OrderItem] = Field(..., min_length=1)


class CartSnapshot(BaseModel):
    """Payload submitted to the order service when a cart is checked out."""

    items: List[OrderItem] = Field(..., min_length=1)
    order_type: OrderType
    table_number: str = ""
    customer_name: str
    customer_phone: str
    subtotal: float
    tax_amount: float
    discount_amount: float = Field(default=0.0, ge=0)
    total_amount: float = Field(..., ge=0)
    notes: str = ""
    user_id: Optional[int] = None


class CreatedOrder(BaseModel):
    id: int
    order_number: int


class OrderPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[OrderStatus] = None
    order_type: Optional[OrderType] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    table_number: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[OrderItem]] = Field(default=None, min_length=1)
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    discount_amount: Optional[float] = Field(default=None, ge=0)
    total_amount: Optional[float] = Field(default=None, ge=0)

    def payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


# Reports


class SalesSummary(BaseModel):
    total_revenue: float = 0.0
    total_orders: int = 0
    cash_amount: float = 0.0
    card_amount: float = 0.0
    upi_amount: float = 0.0
    total_tax: float = 0.0
    total_discount: float = 0.0


class TopItem(BaseModel):
    item_name: str
    quantity: int = 0
    revenue: float = 0.0


class DailyReport(BaseModel):
    sales: SalesSummary = Field(default_factory=SalesSummary)
    orders: List[OrderSummary] = Field(default_factory=list)
    top_items: List[TopItem] = Field(default_factory=list)


class DayAggregate(BaseModel):
    date: dt.date
    total_revenue: float = 0.0
    total_orders: int = 0
    total_tax: float = 0.0
    total_discount: float = 0.0


class WeeklyTotals(BaseModel):
    revenue: float = 0.0
    orders: int = 0
    tax: float = 0.0
    discount: float = 0.0


class WeeklyReport(BaseModel):
    start_date: dt.date
    days: List[DayAggregate]
    totals: WeeklyTotals


class PaymentShare(BaseModel):
    method: PaymentMethod
    amount: float


class DashboardStats(BaseModel):
    today_revenue: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    open_orders: int = 0


class Dashboard(BaseModel):
    stats: DashboardStats
    recent_orders: List[Order] = Field(default_factory=list)


# Terminal API


class CartLineView(BaseModel):
    item_id: str
    name: str
    unit_price: float
    quantity: int
    tax_rate: float
    line_total: float


class CartView(BaseModel):
    items: List[CartLineView]
    order_type: OrderType
    table_number: str
    customer_name: str
    customer_phone: str
    discount_amount: float
    subtotal: float
    tax_amount: float
    total_amount: float
    item_count: int


class QuantityUpdate(BaseModel):
    quantity: int


class CartFieldsUpdate(BaseModel):
    order_type: Optional[OrderType] = None
    table_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    discount_amount: Optional[float] = Field(default=None, ge=0)


class CustomerInfo(BaseModel):
    customer_name: str
    customer_phone: str


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod


class StepFailureView(BaseModel):
    step: str
    message: str


class CheckoutView(BaseModel):
    state: str
    step_index: int
    current_step: Optional[str] = None
    order_id: Optional[int] = None
    order_number: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    failure: Optional[StepFailureView] = None


class OrderItemEdit(BaseModel):
    quantity: int
    unit_price: float = Field(..., ge=0)


class OrderEditRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[OrderStatus] = None
    order_type: Optional[OrderType] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    table_number: Optional[str] = None
    notes: Optional[str] = None
    discount_amount: Optional[float] = Field(default=None, ge=0)
    items: Optional[List[OrderItemEdit]] = Field(
        default=None,
        description="Edited lines by position; quantity <= 0 drops the line.",
    )


class StatusChangeRequest(BaseModel):
    status: OrderStatus


class CompleteOrderRequest(BaseModel):
    payment_method: PaymentMethod


class ListingStats(BaseModel):
    total_revenue: float = 0.0
    active_count: int = 0
    completed_count: int = 0


class OrderListing(BaseModel):
    orders: List[Order]
    stats: ListingStats
