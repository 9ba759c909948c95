from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from pos_service.order_client import MockOrderServiceClient
from pos_service.report_client import MockReportClient
from pos_service.reports import (
    build_weekly,
    dashboard_stats,
    fill_week,
    payment_breakdown,
    week_start,
)
from pos_service.schemas import (
    CartSnapshot,
    DailyReport,
    DayAggregate,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMethod,
    SalesSummary,
)


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


def snapshot(items, total, user_id=None) -> CartSnapshot:
    return CartSnapshot(
        items=items,
        order_type=OrderType.TAKEAWAY,
        customer_name="Guest",
        customer_phone="9000000000",
        subtotal=total,
        tax_amount=0.0,
        total_amount=total,
        user_id=user_id,
    )


def test_week_starts_on_monday():
    assert week_start(date(2024, 6, 12)) == date(2024, 6, 10)
    assert week_start(date(2024, 6, 10)) == date(2024, 6, 10)
    assert week_start(date(2024, 6, 16)) == date(2024, 6, 10)


def test_fill_week_zero_fills_missing_days():
    start = date(2024, 6, 10)
    days = fill_week([DayAggregate(date=date(2024, 6, 12), total_revenue=500.0, total_orders=4)], start)
    assert len(days) == 7
    assert [day.date.day for day in days] == [10, 11, 12, 13, 14, 15, 16]
    assert days[2].total_revenue == 500.0
    assert days[0].total_revenue == 0.0 and days[0].total_orders == 0


def test_build_weekly_totals():
    report = build_weekly(
        [
            DayAggregate(date=date(2024, 6, 10), total_revenue=100.0, total_orders=1, total_tax=5.0),
            DayAggregate(date=date(2024, 6, 14), total_revenue=250.0, total_orders=2, total_discount=10.0),
        ],
        date(2024, 6, 13),
    )
    assert report.start_date == date(2024, 6, 10)
    assert report.totals.revenue == pytest.approx(350.0)
    assert report.totals.orders == 3
    assert report.totals.tax == pytest.approx(5.0)
    assert report.totals.discount == pytest.approx(10.0)


def test_payment_breakdown_hides_unused_methods():
    shares = payment_breakdown(SalesSummary(cash_amount=120.0, upi_amount=80.0))
    assert [(share.method, share.amount) for share in shares] == [
        (PaymentMethod.CASH, 120.0),
        (PaymentMethod.UPI, 80.0),
    ]
    assert payment_breakdown(SalesSummary()) == []


def test_dashboard_stats_counts_open_orders():
    created = datetime(2024, 6, 12, 10, 0, tzinfo=timezone.utc)
    recent = [
        Order(id=i, order_number=1000 + i, status=status, items=[OrderItem(item_name="Chai", quantity=1, unit_price=15.0)], created_at=created)
        for i, status in enumerate(
            [OrderStatus.ACTIVE, OrderStatus.HELD, OrderStatus.COMPLETED, OrderStatus.CANCELLED], start=1
        )
    ]
    stats = dashboard_stats(DailyReport(sales=SalesSummary(total_revenue=900.0, total_orders=3)), recent)
    assert stats.today_revenue == 900.0
    assert stats.total_orders == 3
    assert stats.avg_order_value == pytest.approx(300.0)
    assert stats.open_orders == 2


def test_dashboard_average_is_zero_without_orders():
    assert dashboard_stats(DailyReport(), []).avg_order_value == 0.0


@pytest.mark.asyncio
async def test_mock_report_aggregates_completed_orders():
    clock = FixedClock(datetime(2024, 6, 12, 11, 0, tzinfo=timezone.utc))
    orders = MockOrderServiceClient(clock=clock)
    chai = OrderItem(item_name="Chai", quantity=2, unit_price=15.0)
    dosa = OrderItem(item_name="Masala Dosa", quantity=1, unit_price=80.0)

    first = await orders.create_order(snapshot([chai, dosa], 110.0, user_id=1))
    second = await orders.create_order(snapshot([chai], 30.0, user_id=2))
    await orders.create_order(snapshot([dosa], 80.0, user_id=1))
    await orders.complete(first.id, PaymentMethod.CASH)
    await orders.complete(second.id, PaymentMethod.UPI)

    clock.moment = datetime(2024, 6, 14, 9, 0, tzinfo=timezone.utc)
    third = await orders.create_order(snapshot([dosa], 80.0, user_id=1))
    await orders.complete(third.id, PaymentMethod.CARD)

    reports = MockReportClient(orders)
    daily = await reports.daily_report(date(2024, 6, 12))
    assert daily.sales.total_revenue == pytest.approx(140.0)
    assert daily.sales.total_orders == 2
    assert daily.sales.cash_amount == pytest.approx(110.0)
    assert daily.sales.upi_amount == pytest.approx(30.0)
    assert daily.sales.card_amount == 0.0
    assert [(item.item_name, item.quantity) for item in daily.top_items] == [("Chai", 4), ("Masala Dosa", 1)]

    biller = await reports.biller_daily(1, date(2024, 6, 12))
    assert biller.sales.total_orders == 1
    assert biller.orders[0].id == first.id

    weekly = build_weekly(await reports.weekly_report(date(2024, 6, 10)), date(2024, 6, 12))
    assert [day.total_orders for day in weekly.days] == [0, 0, 2, 0, 1, 0, 0]
    assert weekly.totals.revenue == pytest.approx(220.0)
