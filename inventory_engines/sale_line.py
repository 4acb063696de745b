"""Sale line value object shared by the reconciliation and totals engines."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from inventory_engines.valuation.cost_batch import ConsumedBatch, total_cost

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class SaleLine:
    """
    One line of a sale as the engines see it.

    ``qty`` is in ``unit`` (possibly the item's secondary unit).
    ``consumed_batches``/``total_cost`` record the cost layers drawn on the
    last time the line was saved.
    """

    item: str
    qty: Decimal
    unit: str | None = None
    price: Decimal = ZERO
    amount: Decimal = ZERO
    consumed_batches: tuple[ConsumedBatch, ...] = ()
    total_cost: Decimal = ZERO
    discount_percentage: Decimal | None = None
    discount_amount: Decimal | None = None

    @property
    def gross(self) -> Decimal:
        return self.qty * self.price

    def with_cost(self, consumed: tuple[ConsumedBatch, ...]) -> SaleLine:
        """Copy of this line carrying ``consumed`` and its derived total cost."""
        return SaleLine(
            item=self.item,
            qty=self.qty,
            unit=self.unit,
            price=self.price,
            amount=self.amount,
            consumed_batches=tuple(consumed),
            total_cost=total_cost(consumed),
            discount_percentage=self.discount_percentage,
            discount_amount=self.discount_amount,
        )
