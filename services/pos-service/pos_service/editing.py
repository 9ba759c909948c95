from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .filters import OrderQuery, filter_orders
from .order_client import OrderServiceClient
from .pricing import Totals, compute_totals
from .print_client import PrintClient
from .schemas import Order, OrderItem, OrderPatch, OrderStatus, OrderType, PaymentMethod
from .status import OPEN_STATUSES, ensure_transition, is_editable

logger = logging.getLogger(__name__)


class OrderEditError(Exception):
    """Raised when an edit to an existing order is rejected locally."""


def _ensure_not_completion(status: OrderStatus | str) -> OrderStatus:
    status = OrderStatus(status)
    if status == OrderStatus.COMPLETED:
        raise OrderEditError("Completing an order needs a payment method; use complete instead.")
    return status


@dataclass
class OrderDraft:
    """Editable local copy of an order that is still open."""

    order_id: int
    original_status: OrderStatus
    items: List[OrderItem]
    status: OrderStatus
    order_type: OrderType
    customer_name: str = ""
    customer_phone: str = ""
    table_number: str = ""
    notes: str = ""
    discount_amount: float = 0.0
    touched: set = field(default_factory=set)

    @classmethod
    def from_order(cls, order: Order) -> "OrderDraft":
        if not is_editable(order.status):
            raise OrderEditError(
                f"Order #{order.order_number} is {order.status.value} and can no longer be edited."
            )
        return cls(
            order_id=order.id,
            original_status=order.status,
            items=[item.model_copy() for item in order.items],
            status=order.status,
            order_type=order.order_type,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            table_number=order.table_number,
            notes=order.notes,
            discount_amount=order.discount_amount,
        )

    def set_quantity(self, index: int, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(index)
            return
        self.items[index] = self.items[index].model_copy(update={"quantity": quantity})
        self.touched.add("items")

    def set_unit_price(self, index: int, price: float) -> None:
        if price < 0:
            raise OrderEditError("Unit price must not be negative.")
        self.items[index] = self.items[index].model_copy(update={"unit_price": float(price)})
        self.touched.add("items")

    def remove_item(self, index: int) -> None:
        if len(self.items) <= 1:
            raise OrderEditError("Order must have at least one item.")
        del self.items[index]
        self.touched.add("items")

    def set_discount(self, amount: float) -> None:
        if amount < 0:
            raise OrderEditError("Discount must not be negative.")
        self.discount_amount = float(amount)

    def set_status(self, status: OrderStatus | str) -> None:
        status = _ensure_not_completion(status)
        ensure_transition(self.original_status, status)
        self.status = status

    def update_details(
        self,
        *,
        order_type: Optional[OrderType] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        table_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        if order_type is not None:
            self.order_type = OrderType(order_type)
        if customer_name is not None:
            self.customer_name = customer_name
        if customer_phone is not None:
            self.customer_phone = customer_phone
        if table_number is not None:
            self.table_number = table_number
        if notes is not None:
            self.notes = notes

    def totals(self) -> Totals:
        return compute_totals(self.items, self.discount_amount)

    def to_patch(self) -> OrderPatch:
        totals = self.totals()
        return OrderPatch(
            status=self.status if self.status != self.original_status else None,
            order_type=self.order_type,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            table_number=self.table_number,
            notes=self.notes,
            items=list(self.items) if "items" in self.touched else None,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total,
        )


class OrderDesk:
    """Order listing actions: view, edit, status changes, deletion and printing."""

    def __init__(self, orders: OrderServiceClient, printer: PrintClient):
        self._orders = orders
        self._printer = printer

    async def list(self, query: OrderQuery, now: Optional[datetime] = None) -> List[Order]:
        orders = await self._orders.get_all({"date_range": query.date_range.value})
        return filter_orders(orders, query, now)

    async def get(self, order_id: int) -> Order:
        return await self._orders.get_by_id(order_id)

    async def open_draft(self, order_id: int) -> OrderDraft:
        return OrderDraft.from_order(await self._orders.get_by_id(order_id))

    async def save(self, draft: OrderDraft) -> Order:
        # Re-check against the stored order; another terminal may have closed it meanwhile.
        current = await self._orders.get_by_id(draft.order_id)
        if current.status not in OPEN_STATUSES:
            raise OrderEditError(
                f"Order #{current.order_number} is {current.status.value} and can no longer be edited."
            )
        await self._orders.update(draft.order_id, draft.to_patch())
        logger.info("Order %s updated", draft.order_id)
        return await self._orders.get_by_id(draft.order_id)

    async def change_status(self, order_id: int, status: OrderStatus | str) -> Order:
        status = _ensure_not_completion(status)
        current = await self._orders.get_by_id(order_id)
        ensure_transition(current.status, status)
        await self._orders.update(order_id, OrderPatch(status=status))
        logger.info("Order %s moved %s -> %s", order_id, current.status.value, status.value)
        return await self._orders.get_by_id(order_id)

    async def complete(self, order_id: int, payment_method: PaymentMethod | str) -> Order:
        method = PaymentMethod(payment_method)
        current = await self._orders.get_by_id(order_id)
        ensure_transition(current.status, OrderStatus.COMPLETED)
        await self._orders.complete(order_id, method)
        logger.info("Order %s completed manually via %s", order_id, method.value)
        return await self._orders.get_by_id(order_id)

    async def delete(self, order_id: int) -> None:
        await self._orders.delete(order_id)
        logger.info("Order %s deleted", order_id)

    async def print_receipt(self, order_id: int) -> Order:
        order = await self._orders.get_by_id(order_id)
        await self._printer.print_receipt(order)
        return order

    async def print_kitchen_ticket(self, order_id: int) -> Order:
        order = await self._orders.get_by_id(order_id)
        await self._printer.print_kot(order)
        return order
