from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .schemas import CartSnapshot, CreatedOrder, Order, OrderPatch, OrderStatus, PaymentMethod
from .status import InvalidStatusTransition, ensure_transition

logger = logging.getLogger(__name__)


class OrderServiceError(Exception):
    """Represents downstream order service failures."""


class OrderNotFoundError(OrderServiceError):
    """Raised when the order service does not know an order id."""


class OrderServiceClient(Protocol):
    async def create_order(self, snapshot: CartSnapshot) -> CreatedOrder: ...

    async def get_by_id(self, order_id: int) -> Order: ...

    async def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]: ...

    async def get_recent(self, limit: int = 8) -> List[Order]: ...

    async def update(self, order_id: int, patch: OrderPatch) -> None: ...

    async def delete(self, order_id: int) -> None: ...

    async def complete(self, order_id: int, payment_method: PaymentMethod) -> None: ...


class HTTPOrderServiceClient:
    def __init__(self, base_url: str, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_order(self, snapshot: CartSnapshot) -> CreatedOrder:
        response = await self._send("POST", "/orders", json=snapshot.model_dump(mode="json"))
        return _parse(CreatedOrder, response.json())

    async def get_by_id(self, order_id: int) -> Order:
        response = await self._send("GET", f"/orders/{order_id}")
        return _parse(Order, response.json())

    async def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        params = {key: value for key, value in (filters or {}).items() if value is not None}
        response = await self._send("GET", "/orders", params=params)
        return [_parse(Order, row) for row in response.json()]

    async def get_recent(self, limit: int = 8) -> List[Order]:
        response = await self._send("GET", "/orders/recent", params={"limit": limit})
        return [_parse(Order, row) for row in response.json()]

    async def update(self, order_id: int, patch: OrderPatch) -> None:
        await self._send("PATCH", f"/orders/{order_id}", json=patch.payload())

    async def delete(self, order_id: int) -> None:
        await self._send("DELETE", f"/orders/{order_id}")

    async def complete(self, order_id: int, payment_method: PaymentMethod) -> None:
        await self._send(
            "POST",
            f"/orders/{order_id}/complete",
            json={"payment_method": PaymentMethod(payment_method).value},
        )

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise OrderServiceError(f"Order service unreachable: {exc}") from exc

        if response.status_code == 404:
            raise OrderNotFoundError(f"Order not found ({method} {path}).")
        if response.status_code >= 400:
            raise OrderServiceError(
                f"Order service rejected {method} {path} ({response.status_code}): {response.text}"
            )
        return response


def _parse(model, payload):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise OrderServiceError(f"Malformed order service payload: {exc}") from exc


class MockOrderServiceClient:
    """In-memory order service for local runs without a backend."""

    def __init__(self, first_order_number: int = 1001, clock=None):
        self._orders: Dict[int, Order] = {}
        self._next_id = 1
        self._next_number = first_order_number
        self._clock = clock or (lambda: datetime.now().astimezone())

    async def create_order(self, snapshot: CartSnapshot) -> CreatedOrder:
        order = Order(
            id=self._next_id,
            order_number=self._next_number,
            created_at=self._clock(),
            **snapshot.model_dump(exclude={"items"}),
            items=snapshot.items,
        )
        self._orders[order.id] = order
        self._next_id += 1
        self._next_number += 1
        logger.info("Mock order created id=%s number=%s", order.id, order.order_number)
        return CreatedOrder(id=order.id, order_number=order.order_number)

    async def get_by_id(self, order_id: int) -> Order:
        return self._lookup(order_id).model_copy(deep=True)

    async def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        orders = sorted(self._orders.values(), key=lambda order: order.created_at, reverse=True)
        status = (filters or {}).get("status")
        if status:
            orders = [order for order in orders if order.status == OrderStatus(status)]
        return [order.model_copy(deep=True) for order in orders]

    async def get_recent(self, limit: int = 8) -> List[Order]:
        return (await self.get_all())[:limit]

    async def update(self, order_id: int, patch: OrderPatch) -> None:
        order = self._lookup(order_id)
        changes = {name: getattr(patch, name) for name in patch.model_fields_set if getattr(patch, name) is not None}
        if "status" in changes:
            self._transition(order, changes["status"])
        self._orders[order_id] = order.model_copy(update=changes)

    async def delete(self, order_id: int) -> None:
        self._lookup(order_id)
        del self._orders[order_id]

    async def complete(self, order_id: int, payment_method: PaymentMethod) -> None:
        order = self._lookup(order_id)
        self._transition(order, OrderStatus.COMPLETED)
        self._orders[order_id] = order.model_copy(
            update={"status": OrderStatus.COMPLETED, "payment_method": PaymentMethod(payment_method)}
        )

    @property
    def orders(self) -> List[Order]:
        return list(self._orders.values())

    def _lookup(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _transition(order: Order, target: OrderStatus) -> None:
        try:
            ensure_transition(order.status, target)
        except InvalidStatusTransition as exc:
            raise OrderServiceError(str(exc)) from exc
