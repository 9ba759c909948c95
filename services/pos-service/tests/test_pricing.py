from __future__ import annotations

import pytest

from pos_service.pricing import Totals, compute_totals, money
from pos_service.schemas import LineItem


@pytest.fixture()
def lines():
    return [
        LineItem(item_id="A", name="Paneer Tikka", unit_price=100.0, quantity=2, tax_rate=5),
        LineItem(item_id="B", name="Lassi", unit_price=50.0, quantity=1),
    ]


def test_subtotal_and_tax(lines):
    totals = compute_totals(lines)
    assert totals.subtotal == pytest.approx(250.0)
    assert totals.tax_amount == pytest.approx(10.0)
    assert totals.total == pytest.approx(260.0)


def test_discount_reduces_total(lines):
    assert compute_totals(lines, 20).total == pytest.approx(240.0)


def test_discount_larger_than_total_floors_at_zero(lines):
    totals = compute_totals(lines, 1000)
    assert totals.total == 0.0
    assert totals.rounded().total == 0.0


def test_negative_discount_rejected(lines):
    with pytest.raises(ValueError):
        compute_totals(lines, -1)


def test_empty_items():
    assert compute_totals([]) == Totals(subtotal=0.0, tax_amount=0.0, discount_amount=0.0, total=0.0)


def test_money_rounds_half_up():
    assert money(2.675) == 2.68
    assert money(10.005) == 10.01
    assert money(3.0) == 3.0


def test_rounding_only_on_presentation_copy():
    line = LineItem(item_id="C", name="Chai", unit_price=10.0, quantity=1, tax_rate=3.333)
    totals = compute_totals([line, line, line])
    assert totals.tax_amount == pytest.approx(0.9999)
    assert totals.rounded().tax_amount == 1.0
    # Raw figures are untouched by rounding.
    assert totals.tax_amount != totals.rounded().tax_amount
