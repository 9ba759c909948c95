from __future__ import annotations

from typing import Dict, FrozenSet

from .schemas import OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.ACTIVE: frozenset(
        {OrderStatus.HELD, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.HELD: frozenset(
        {OrderStatus.ACTIVE, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Orders that still need attention; also the statuses whose fields may be edited.
OPEN_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.ACTIVE, OrderStatus.HELD})


class InvalidStatusTransition(Exception):
    """Raised when an order status change is not permitted."""


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[OrderStatus(status)]


def is_editable(status: OrderStatus) -> bool:
    return OrderStatus(status) in OPEN_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return not is_terminal(current)
    return target in TRANSITIONS[current]


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Order cannot move from '{OrderStatus(current).value}' to '{OrderStatus(target).value}'."
        )
