from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol


class Priced(Protocol):
    unit_price: float
    quantity: int
    tax_rate: float


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax_amount: float
    discount_amount: float
    total: float

    def rounded(self) -> "Totals":
        """Presentation copy. Never feed it back into further arithmetic."""
        return Totals(
            subtotal=money(self.subtotal),
            tax_amount=money(self.tax_amount),
            discount_amount=money(self.discount_amount),
            total=money(self.total),
        )


def money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_totals(items: Iterable[Priced], discount: float = 0.0) -> Totals:
    if discount < 0:
        raise ValueError("Discount must not be negative.")

    subtotal = 0.0
    tax_amount = 0.0
    for item in items:
        line = item.unit_price * item.quantity
        subtotal += line
        tax_amount += line * item.tax_rate / 100

    # A discount above subtotal + tax floors the total at zero.
    total = max(0.0, subtotal + tax_amount - discount)
    return Totals(subtotal=subtotal, tax_amount=tax_amount, discount_amount=discount, total=total)
