from __future__ import annotations

import logging
from typing import List, Protocol

import httpx

from .schemas import Order

logger = logging.getLogger(__name__)


class PrintServiceError(Exception):
    """Raised when the kitchen or receipt printer cannot take a job."""


class PrintClient(Protocol):
    async def print_kot(self, order: Order) -> None: ...

    async def print_receipt(self, order: Order) -> None: ...


class HTTPPrintClient:
    def __init__(self, base_url: str, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def print_kot(self, order: Order) -> None:
        payload = order.model_dump(mode="json")
        await self._post("/print/kot", {"order": payload, "items": payload["items"]}, "Kitchen ticket")

    async def print_receipt(self, order: Order) -> None:
        await self._post("/print/receipt", {"order": order.model_dump(mode="json")}, "Receipt")

    async def _post(self, path: str, payload: dict, label: str) -> None:
        try:
            response = await self._client.post(f"{self._base_url}{path}", json=payload)
        except httpx.HTTPError as exc:
            raise PrintServiceError(f"Print service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise PrintServiceError(
                f"{label} print failed ({response.status_code}): {response.text}"
            )


class MockPrintClient:
    """Fallback while no print service is attached; keeps every job in memory."""

    def __init__(self) -> None:
        self.kitchen_tickets: List[Order] = []
        self.receipts: List[Order] = []

    async def print_kot(self, order: Order) -> None:
        logger.info("Mock KOT for order #%s (%d items)", order.order_number, len(order.items))
        self.kitchen_tickets.append(order)

    async def print_receipt(self, order: Order) -> None:
        logger.info("Mock receipt for order #%s total=%.2f", order.order_number, order.total_amount)
        self.receipts.append(order)
