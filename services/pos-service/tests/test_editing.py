from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pos_service.editing import OrderDesk, OrderDraft, OrderEditError
from pos_service.filters import OrderQuery
from pos_service.order_client import MockOrderServiceClient, OrderNotFoundError
from pos_service.print_client import MockPrintClient
from pos_service.schemas import (
    CartSnapshot,
    DateRange,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMethod,
)
from pos_service.status import InvalidStatusTransition


def snapshot(**overrides) -> CartSnapshot:
    fields = dict(
        items=[
            OrderItem(item_id="A", item_name="Paneer Tikka", quantity=2, unit_price=100.0, tax_rate=5),
            OrderItem(item_id="B", item_name="Lassi", quantity=1, unit_price=50.0),
        ],
        order_type=OrderType.DINE_IN,
        table_number="T1",
        customer_name="Asha",
        customer_phone="9876543210",
        subtotal=250.0,
        tax_amount=10.0,
        total_amount=260.0,
    )
    fields.update(overrides)
    return CartSnapshot(**fields)


def order_with(status: OrderStatus, items=None) -> Order:
    return Order(
        id=9,
        order_number=1009,
        status=status,
        items=items or [OrderItem(item_name="Thali", quantity=1, unit_price=120.0)],
        created_at=datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def service():
    return MockOrderServiceClient()


@pytest.fixture()
def printer():
    return MockPrintClient()


@pytest.fixture()
def desk(service, printer):
    return OrderDesk(service, printer)


@pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
def test_terminal_orders_cannot_be_opened_for_edit(status):
    with pytest.raises(OrderEditError):
        OrderDraft.from_order(order_with(status))


def test_last_item_cannot_be_removed():
    draft = OrderDraft.from_order(order_with(OrderStatus.ACTIVE))
    with pytest.raises(OrderEditError):
        draft.remove_item(0)
    with pytest.raises(OrderEditError):
        draft.set_quantity(0, 0)
    assert len(draft.items) == 1


def test_quantity_zero_drops_line_when_others_remain():
    items = [
        OrderItem(item_name="Thali", quantity=1, unit_price=120.0),
        OrderItem(item_name="Chai", quantity=2, unit_price=15.0),
    ]
    draft = OrderDraft.from_order(order_with(OrderStatus.HELD, items))
    draft.set_quantity(1, 0)
    assert [item.item_name for item in draft.items] == ["Thali"]


def test_patch_carries_recomputed_totals():
    draft = OrderDraft.from_order(order_with(OrderStatus.ACTIVE))
    draft.set_quantity(0, 3)
    draft.set_unit_price(0, 110.0)
    draft.set_discount(30)
    patch = draft.to_patch()
    assert patch.subtotal == pytest.approx(330.0)
    assert patch.total_amount == pytest.approx(300.0)
    assert patch.items[0].line_total == pytest.approx(330.0)
    assert patch.status is None


def test_patch_leaves_items_out_when_untouched():
    draft = OrderDraft.from_order(order_with(OrderStatus.ACTIVE))
    draft.update_details(customer_name="Ravi", notes="extra spicy")
    payload = draft.to_patch().payload()
    assert "items" not in payload
    assert "status" not in payload
    assert payload["customer_name"] == "Ravi"
    assert payload["notes"] == "extra spicy"


def test_edit_rejects_negative_values():
    draft = OrderDraft.from_order(order_with(OrderStatus.ACTIVE))
    with pytest.raises(OrderEditError):
        draft.set_discount(-1)
    with pytest.raises(OrderEditError):
        draft.set_unit_price(0, -5)


def test_draft_status_change_follows_state_machine():
    draft = OrderDraft.from_order(order_with(OrderStatus.HELD))
    draft.set_status("active")
    assert draft.to_patch().status == OrderStatus.ACTIVE
    with pytest.raises(ValueError):
        draft.set_status("preparing")


@pytest.mark.asyncio
async def test_save_persists_edit(desk, service):
    created = await service.create_order(snapshot())
    draft = await desk.open_draft(created.id)
    draft.set_quantity(0, 1)
    draft.set_discount(10)

    saved = await desk.save(draft)

    assert saved.items[0].quantity == 1
    assert saved.subtotal == pytest.approx(150.0)
    assert saved.tax_amount == pytest.approx(5.0)
    assert saved.total_amount == pytest.approx(145.0)
    assert saved.discount_amount == 10.0


@pytest.mark.asyncio
async def test_save_rejected_when_order_closed_meanwhile(desk, service):
    created = await service.create_order(snapshot())
    draft = await desk.open_draft(created.id)
    await service.complete(created.id, PaymentMethod.CASH)

    with pytest.raises(OrderEditError):
        await desk.save(draft)


@pytest.mark.asyncio
async def test_hold_resume_and_cancel(desk, service):
    created = await service.create_order(snapshot())
    assert (await desk.change_status(created.id, "held")).status == OrderStatus.HELD
    assert (await desk.change_status(created.id, OrderStatus.ACTIVE)).status == OrderStatus.ACTIVE
    assert (await desk.change_status(created.id, OrderStatus.CANCELLED)).status == OrderStatus.CANCELLED

    with pytest.raises(InvalidStatusTransition):
        await desk.change_status(created.id, OrderStatus.ACTIVE)
    with pytest.raises(InvalidStatusTransition):
        await desk.complete(created.id, PaymentMethod.CARD)
    with pytest.raises(OrderEditError):
        await desk.open_draft(created.id)


@pytest.mark.asyncio
async def test_manual_completion_records_payment(desk, service):
    created = await service.create_order(snapshot())
    await desk.change_status(created.id, OrderStatus.HELD)
    order = await desk.complete(created.id, "card")
    assert order.status == OrderStatus.COMPLETED
    assert order.payment_method == PaymentMethod.CARD


@pytest.mark.asyncio
async def test_delete_and_print(desk, service, printer):
    created = await service.create_order(snapshot())
    await desk.print_kitchen_ticket(created.id)
    await desk.print_receipt(created.id)
    assert len(printer.kitchen_tickets) == 1
    assert len(printer.receipts) == 1

    await desk.delete(created.id)
    with pytest.raises(OrderNotFoundError):
        await desk.get(created.id)


@pytest.mark.asyncio
async def test_list_applies_query(desk, service):
    await service.create_order(snapshot(customer_name="Asha"))
    second = await service.create_order(snapshot(customer_name="Vikram"))
    await service.complete(second.id, PaymentMethod.UPI)

    query = OrderQuery(status=OrderStatus.COMPLETED, date_range=DateRange.TODAY)
    listed = await desk.list(query)
    assert [order.customer_name for order in listed] == ["Vikram"]


def test_draft_cannot_complete_without_payment():
    draft = OrderDraft.from_order(order_with(OrderStatus.ACTIVE))
    with pytest.raises(OrderEditError):
        draft.set_status(OrderStatus.COMPLETED)
    assert draft.status == OrderStatus.ACTIVE


@pytest.mark.asyncio
async def test_status_change_cannot_complete_without_payment(desk, service):
    created = await service.create_order(snapshot())
    with pytest.raises(OrderEditError):
        await desk.change_status(created.id, "completed")

    stored = await desk.get(created.id)
    assert stored.status == OrderStatus.ACTIVE
    assert stored.payment_method is None

    order = await desk.complete(created.id, PaymentMethod.CASH)
    assert order.payment_method == PaymentMethod.CASH
