from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List

from .schemas import (
    DailyReport,
    DashboardStats,
    DayAggregate,
    Order,
    PaymentMethod,
    PaymentShare,
    SalesSummary,
    WeeklyReport,
    WeeklyTotals,
)
from .status import OPEN_STATUSES


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def fill_week(days: Iterable[DayAggregate], start: date) -> List[DayAggregate]:
    """Seven consecutive days from ``start``; days without sales come back as zeros."""
    by_date = {day.date: day for day in days}
    return [
        by_date.get(start + timedelta(days=offset), DayAggregate(date=start + timedelta(days=offset)))
        for offset in range(7)
    ]


def weekly_totals(days: Iterable[DayAggregate]) -> WeeklyTotals:
    days = list(days)
    return WeeklyTotals(
        revenue=sum(day.total_revenue for day in days),
        orders=sum(day.total_orders for day in days),
        tax=sum(day.total_tax for day in days),
        discount=sum(day.total_discount for day in days),
    )


def build_weekly(days: Iterable[DayAggregate], any_day: date) -> WeeklyReport:
    start = week_start(any_day)
    filled = fill_week(days, start)
    return WeeklyReport(start_date=start, days=filled, totals=weekly_totals(filled))


def payment_breakdown(sales: SalesSummary) -> List[PaymentShare]:
    shares = [
        PaymentShare(method=PaymentMethod.CASH, amount=sales.cash_amount),
        PaymentShare(method=PaymentMethod.CARD, amount=sales.card_amount),
        PaymentShare(method=PaymentMethod.UPI, amount=sales.upi_amount),
    ]
    return [share for share in shares if share.amount > 0]


def dashboard_stats(report: DailyReport, recent_orders: Iterable[Order]) -> DashboardStats:
    sales = report.sales
    return DashboardStats(
        today_revenue=sales.total_revenue,
        total_orders=sales.total_orders,
        avg_order_value=sales.total_revenue / sales.total_orders if sales.total_orders > 0 else 0.0,
        open_orders=sum(1 for order in recent_orders if order.status in OPEN_STATUSES),
    )
