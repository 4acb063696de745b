"""
inventory_engines.sale_totals -- Invoice arithmetic for a sale.

Responsibility:
    Compute subtotal, discounts, tax and grand total for a list of sale
    lines, and the credit amount a sale posts to its party's balance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - grand_total >= 0.
    - A line's discount percentage takes precedence over its flat amount.
    - Tax in percent mode applies to (subtotal - total discount).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from inventory_engines.sale_line import SaleLine
from inventory_engines.tracer import traced_engine

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT = "%"


@dataclass(frozen=True, slots=True)
class SaleTotals:
    subtotal: Decimal
    line_discount: Decimal
    sale_discount: Decimal
    tax_value: Decimal
    grand_total: Decimal

    @property
    def total_discount(self) -> Decimal:
        return self.line_discount + self.sale_discount


def line_discount(line: SaleLine) -> Decimal:
    if line.discount_percentage:
        return line.gross * line.discount_percentage / HUNDRED
    return line.discount_amount or ZERO


def line_amount(line: SaleLine) -> Decimal:
    """Net amount of one line after its own discount."""
    return line.gross - line_discount(line)


@traced_engine("sale_totals", "1.0", fingerprint_fields=("lines", "discount", "discount_type", "tax", "tax_type"))
def compute_sale_totals(
    lines: Iterable[SaleLine],
    discount: Decimal = ZERO,
    discount_type: str = PERCENT,
    tax: Decimal = ZERO,
    tax_type: str = PERCENT,
) -> SaleTotals:
    """
    Compute invoice totals.

    ``discount``/``tax`` are percentages when their type is ``"%"`` and flat
    amounts otherwise.
    """
    lines = list(lines)
    subtotal = sum((line.gross for line in lines), ZERO)
    per_line = sum((line_discount(line) for line in lines), ZERO)

    discount = discount or ZERO
    sale_discount = subtotal * discount / HUNDRED if discount_type == PERCENT else discount

    tax = tax or ZERO
    taxable = subtotal - per_line - sale_discount
    tax_value = taxable * tax / HUNDRED if tax_type == PERCENT else tax

    grand_total = max(ZERO, subtotal - per_line - sale_discount + tax_value)

    return SaleTotals(
        subtotal=subtotal,
        line_discount=per_line,
        sale_discount=sale_discount,
        tax_value=tax_value,
        grand_total=grand_total,
    )


def credit_amount(
    payment_type: str,
    grand_total: Decimal,
    received: Decimal,
    credit_type: str = "Credit",
) -> Decimal:
    """
    Amount a sale adds to its party's receivable balance.

    Credit sales post the whole outstanding balance, which goes negative
    when the customer overpaid.  Any other payment type posts only an
    unpaid remainder and never credits the party.
    """
    outstanding = grand_total - received
    if payment_type == credit_type:
        return outstanding
    return max(outstanding, ZERO)
