from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .order_client import MockOrderServiceClient
from .schemas import (
    DailyReport,
    DayAggregate,
    Order,
    OrderStatus,
    OrderSummary,
    PaymentMethod,
    SalesSummary,
    TopItem,
)


class ReportServiceError(Exception):
    """Raised when report aggregation cannot be fetched."""


class ReportClient(Protocol):
    async def daily_report(self, day: date) -> DailyReport: ...

    async def weekly_report(self, week_start: date) -> List[DayAggregate]: ...

    async def biller_daily(self, user_id: int, day: date) -> DailyReport: ...


class HTTPReportClient:
    def __init__(self, base_url: str, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def daily_report(self, day: date) -> DailyReport:
        payload = await self._get("/reports/daily", {"date": day.isoformat()})
        return self._parse(DailyReport, payload)

    async def weekly_report(self, week_start: date) -> List[DayAggregate]:
        payload = await self._get("/reports/weekly", {"start_date": week_start.isoformat()})
        return [self._parse(DayAggregate, row) for row in payload]

    async def biller_daily(self, user_id: int, day: date) -> DailyReport:
        payload = await self._get(
            "/reports/biller-daily", {"user_id": user_id, "date": day.isoformat()}
        )
        return self._parse(DailyReport, payload)

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = await self._client.get(f"{self._base_url}{path}", params=params)
        except httpx.HTTPError as exc:
            raise ReportServiceError(f"Report service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise ReportServiceError(
                f"Report request failed ({response.status_code}): {response.text}"
            )
        return response.json()

    @staticmethod
    def _parse(model, payload):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ReportServiceError(f"Malformed report payload: {exc}") from exc


class MockReportClient:
    """Aggregates completed orders straight out of the in-memory order service."""

    def __init__(self, orders: MockOrderServiceClient, top_items: int = 10):
        self._orders = orders
        self._top_items = top_items

    async def daily_report(self, day: date) -> DailyReport:
        return self._build_daily(self._completed_on(day))

    async def weekly_report(self, week_start: date) -> List[DayAggregate]:
        days = []
        for offset in range(7):
            day = week_start + timedelta(days=offset)
            orders = self._completed_on(day)
            if not orders:
                continue
            days.append(
                DayAggregate(
                    date=day,
                    total_revenue=sum(order.total_amount for order in orders),
                    total_orders=len(orders),
                    total_tax=sum(order.tax_amount for order in orders),
                    total_discount=sum(order.discount_amount for order in orders),
                )
            )
        return days

    async def biller_daily(self, user_id: int, day: date) -> DailyReport:
        return self._build_daily(
            order for order in self._completed_on(day) if order.user_id == user_id
        )

    def _completed_on(self, day: date) -> List[Order]:
        return [
            order
            for order in self._orders.orders
            if order.status == OrderStatus.COMPLETED and order.created_at.date() == day
        ]

    def _build_daily(self, orders: Iterable[Order]) -> DailyReport:
        orders = list(orders)
        by_method: Dict[Optional[PaymentMethod], float] = defaultdict(float)
        item_qty: Dict[str, int] = defaultdict(int)
        item_revenue: Dict[str, float] = defaultdict(float)
        for order in orders:
            by_method[order.payment_method] += order.total_amount
            for item in order.items:
                item_qty[item.item_name] += item.quantity
                item_revenue[item.item_name] += item.line_total

        top = sorted(item_qty, key=lambda name: (-item_qty[name], name))[: self._top_items]
        return DailyReport(
            sales=SalesSummary(
                total_revenue=sum(order.total_amount for order in orders),
                total_orders=len(orders),
                cash_amount=by_method[PaymentMethod.CASH],
                card_amount=by_method[PaymentMethod.CARD],
                upi_amount=by_method[PaymentMethod.UPI],
                total_tax=sum(order.tax_amount for order in orders),
                total_discount=sum(order.discount_amount for order in orders),
            ),
            orders=[OrderSummary.model_validate(order.model_dump(exclude={"items"})) for order in orders],
            top_items=[
                TopItem(item_name=name, quantity=item_qty[name], revenue=item_revenue[name])
                for name in top
            ],
        )
