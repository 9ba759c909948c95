from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .pricing import Totals, compute_totals
from .schemas import CartSnapshot, LineItem, MenuItem, OrderItem, OrderType


class CartError(Exception):
    """Raised when a cart mutation or snapshot is not allowed."""


class CartLockedError(CartError):
    """Raised when the cart is changed while its order is being created."""


@dataclass
class CartState:
    items: Dict[str, LineItem] = field(default_factory=dict)
    order_type: OrderType = OrderType.DINE_IN
    table_number: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    discount_amount: float = 0.0

    @property
    def lines(self) -> List[LineItem]:
        return list(self.items.values())


class Cart:
    """In-progress order for a single operator session.

    All mutation goes through the methods below; each returns a copy of the
    resulting state so callers cannot reach into the cart. While locked, every
    mutation raises ``CartLockedError``.
    """

    def __init__(self) -> None:
        self._state = CartState()
        self._locked = False

    @property
    def state(self) -> CartState:
        return replace(self._state, items=dict(self._state.items))

    @property
    def is_empty(self) -> bool:
        return not self._state.items

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def add_item(self, item: MenuItem) -> CartState:
        self._ensure_unlocked()
        if not item.is_available:
            raise CartError(f"{item.name} is not available.")
        existing = self._state.items.get(item.id)
        if existing is not None:
            self._state.items[item.id] = existing.model_copy(
                update={"quantity": existing.quantity + 1}
            )
        else:
            self._state.items[item.id] = LineItem(
                item_id=item.id,
                name=item.name,
                unit_price=item.price,
                quantity=1,
                tax_rate=item.tax_rate,
            )
        return self.state

    def update_quantity(self, item_id: str, quantity: int) -> CartState:
        self._ensure_unlocked()
        existing = self._state.items.get(item_id)
        if existing is None:
            return self.state
        if quantity <= 0:
            del self._state.items[item_id]
        else:
            self._state.items[item_id] = existing.model_copy(update={"quantity": quantity})
        return self.state

    def remove_item(self, item_id: str) -> CartState:
        self._ensure_unlocked()
        self._state.items.pop(item_id, None)
        return self.state

    def set_order_type(self, order_type: OrderType | str) -> CartState:
        self._ensure_unlocked()
        self._state.order_type = OrderType(order_type)
        return self.state

    def set_table_number(self, table_number: str) -> CartState:
        self._ensure_unlocked()
        self._state.table_number = table_number
        return self.state

    def set_customer_name(self, name: str) -> CartState:
        self._ensure_unlocked()
        self._state.customer_name = name
        return self.state

    def set_customer_phone(self, phone: str) -> CartState:
        self._ensure_unlocked()
        self._state.customer_phone = phone
        return self.state

    def set_discount(self, amount: float) -> CartState:
        self._ensure_unlocked()
        if amount < 0:
            raise CartError("Discount must not be negative.")
        self._state.discount_amount = float(amount)
        return self.state

    def clear(self) -> CartState:
        self._ensure_unlocked()
        self._state = CartState()
        return self.state

    def totals(self) -> Totals:
        return compute_totals(self._state.items.values(), self._state.discount_amount)

    def subtotal(self) -> float:
        return self.totals().subtotal

    def tax(self) -> float:
        return self.totals().tax_amount

    def total(self) -> float:
        return self.totals().total

    def item_count(self) -> int:
        return sum(line.quantity for line in self._state.items.values())

    def snapshot(self, user_id: Optional[int] = None, notes: str = "") -> CartSnapshot:
        if self.is_empty:
            raise CartError("Cart is empty.")
        totals = self.totals()
        state = self._state
        return CartSnapshot(
            items=[OrderItem.from_line(line) for line in state.items.values()],
            order_type=state.order_type,
            table_number=state.table_number,
            customer_name=state.customer_name,
            customer_phone=state.customer_phone,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total,
            notes=notes,
            user_id=user_id,
        )

    def _ensure_unlocked(self) -> None:
        if self._locked:
            raise CartLockedError("Cart is locked while its order is being created.")
