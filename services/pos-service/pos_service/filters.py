from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from .schemas import DateRange, ListingStats, Order, OrderStatus


@dataclass(frozen=True)
class OrderQuery:
    """Search text, status and date window applied together to an order list."""

    search: str = ""
    status: Optional[OrderStatus] = None
    date_range: DateRange = DateRange.TODAY

    @classmethod
    def parse(cls, search: str = "", status: str = "all", date_range: str = "today") -> "OrderQuery":
        return cls(
            search=search or "",
            status=None if status in (None, "", "all") else OrderStatus(status),
            date_range=DateRange(date_range),
        )


def matches_search(order: Order, text: str) -> bool:
    query = text.strip().lower()
    if not query:
        return True
    return (
        query in str(order.order_number)
        or query in order.customer_name.lower()
        or query in order.customer_phone.lower()
    )


def matches_status(order: Order, status: Optional[OrderStatus]) -> bool:
    return status is None or order.status == status


def window_start(date_range: DateRange, now: datetime) -> Optional[datetime]:
    if date_range == DateRange.WEEK:
        return now - timedelta(days=7)
    if date_range == DateRange.MONTH:
        return now - relativedelta(months=1)
    return None


def within_range(order: Order, date_range: DateRange, now: datetime) -> bool:
    if date_range == DateRange.ALL:
        return True
    created = _align(order.created_at, now)
    if date_range == DateRange.TODAY:
        return created.date() == now.date()
    return created >= window_start(date_range, now)


def filter_orders(
    orders: Iterable[Order], query: OrderQuery, now: Optional[datetime] = None
) -> List[Order]:
    now = now or datetime.now().astimezone()
    return [
        order
        for order in orders
        if matches_search(order, query.search)
        and matches_status(order, query.status)
        and within_range(order, query.date_range, now)
    ]


def listing_stats(orders: Iterable[Order]) -> ListingStats:
    orders = list(orders)
    return ListingStats(
        total_revenue=sum(order.total_amount for order in orders),
        active_count=sum(1 for order in orders if order.status == OrderStatus.ACTIVE),
        completed_count=sum(1 for order in orders if order.status == OrderStatus.COMPLETED),
    )


def _align(created: datetime, now: datetime) -> datetime:
    # Compare in the timezone of "now"; naive timestamps are taken as already local to it.
    if created.tzinfo is None:
        return created.replace(tzinfo=now.tzinfo)
    if now.tzinfo is None:
        return created.astimezone().replace(tzinfo=None)
    return created.astimezone(now.tzinfo)
