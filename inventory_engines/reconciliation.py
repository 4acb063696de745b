"""
inventory_engines.reconciliation -- Batch reconciliation on sale edit.

Responsibility:
    Given a sale's recorded lines (with the cost batches they consumed), the
    proposed new lines, and a stock snapshot for every item involved,
    compute the new stock/batches per item and the new consumed batches and
    total cost per line.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by inventory_services.sale_service.SaleService.update_sale,
    which loads the snapshots and persists the results.

Per item name in the union of old and new lines:

    path        | when                                   | inventory effect
    ------------|----------------------------------------|-------------------------------------
    NOT_FOUND   | no item record                         | none
    FLAT        | no batches and no recorded cost layers | stock = max(0, stock + old - new)
    UNCHANGED   | delta == 0                             | none
    CONSUMED    | delta > 0, batches cover delta         | restore old, consume delta FIFO
    PARTIAL     | delta > 0, batches run out             | restore old, consume what exists
    REDUCED     | delta < 0, new > 0                     | none; consumed batches scaled
    REMOVED     | new == 0                               | restore old
    FALLBACK    | primary path raised                    | manual walk over pre-restore batches

Invariants enforced:
    - total_cost == sum(quantity * purchase_price) for every returned line.
    - FIFO: additional consumption drains the earliest batch first.
    - Stock reduction on the batch path is min(delta, available batches).
    - The engine never raises for inventory trouble; it degrades to the
      FLAT / NOT_FOUND / FALLBACK paths instead.

Audit relevance:
    Every item decision is logged with old/new quantities, delta, path and
    resulting stock, so a sale edit's inventory effect can be reconstructed
    from the logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from inventory_engines.sale_line import SaleLine
from inventory_engines.tracer import traced_engine
from inventory_engines.valuation.cost_batch import (
    ConsumedBatch,
    ConsumptionStatus,
    ItemStock,
    consume_fifo,
    fallback_consume,
    restore_batches,
    scale_consumed,
    total_cost,
)
from inventory_kernel.domain.units import DEFAULT_LEGACY_FACTOR
from inventory_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.reconciliation")

ZERO = Decimal("0")


class ReconciliationPath(str, Enum):
    """Which branch reconciled an item."""

    NOT_FOUND = "not_found"
    FLAT = "flat"
    UNCHANGED = "unchanged"
    CONSUMED = "consumed"
    PARTIAL = "partial"
    REDUCED = "reduced"
    REMOVED = "removed"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class ItemReconciliation:
    """Reconciliation outcome for one item name."""

    item_name: str
    path: ReconciliationPath
    old_qty: Decimal
    new_qty: Decimal
    item_before: ItemStock | None
    item_after: ItemStock | None
    consumed_batches: tuple[ConsumedBatch, ...]
    stock_reduced: Decimal = ZERO

    @property
    def delta(self) -> Decimal:
        return self.new_qty - self.old_qty

    @property
    def total_cost(self) -> Decimal:
        return total_cost(self.consumed_batches)

    @property
    def touches_inventory(self) -> bool:
        """True when item_after differs from item_before and must be persisted."""
        return self.item_after is not None and self.item_after != self.item_before


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Outcome of reconciling a whole sale edit."""

    items: tuple[ItemReconciliation, ...]
    lines: tuple[SaleLine, ...]

    def for_item(self, name: str) -> ItemReconciliation | None:
        return next((r for r in self.items if r.item_name == name), None)

    @property
    def changed_items(self) -> tuple[ItemReconciliation, ...]:
        return tuple(r for r in self.items if r.touches_inventory)


class BatchReconciliationEngine:
    """
    Reconciles inventory cost batches when a sale's lines are edited.

    Contract:
        Pure: takes snapshots, returns new snapshots.  Runs once per sale
        update and keeps no state between runs.
    Non-goals:
        - Does not load or persist items (SaleService does).
        - Does not compute sale totals (see inventory_engines.sale_totals).
    """

    def __init__(
        self,
        legacy_secondary_factor: Decimal = DEFAULT_LEGACY_FACTOR,
        default_line_unit: str = "Piece",
    ):
        self.legacy_secondary_factor = legacy_secondary_factor
        self.default_line_unit = default_line_unit

    def base_quantity(self, line: SaleLine | None, item: ItemStock | None) -> Decimal:
        """Line quantity in the item's base unit (0 for a missing line)."""
        if line is None:
            return ZERO
        if item is None:
            return line.qty
        unit = line.unit or self.default_line_unit
        return item.unit.to_base(line.qty, unit, self.legacy_secondary_factor)

    @traced_engine("batch_reconciliation", "1.0", fingerprint_fields=("old_lines", "new_lines", "items"))
    def reconcile(
        self,
        old_lines: Sequence[SaleLine],
        new_lines: Sequence[SaleLine],
        items: Mapping[str, ItemStock | None],
    ) -> ReconciliationResult:
        """
        Reconcile every item in the union of old and new lines.

        Lines are keyed by item name; when a name repeats, the last line wins
        and only that line's cost fields are rewritten.

        Postconditions:
            - result.lines has one entry per new line, in order.
            - result.items has one entry per distinct item name, old names
              first then names new to the sale.
        """
        old_by_name = {line.item: line for line in old_lines}
        new_by_name = {line.item: line for line in new_lines}
        names = list(dict.fromkeys([*old_by_name, *new_by_name]))

        logger.info("reconcile_started", extra={
            "old_line_count": len(old_lines),
            "new_line_count": len(new_lines),
            "item_count": len(names),
        })

        outcomes = {
            name: self.reconcile_item(
                name,
                old_by_name.get(name),
                new_by_name.get(name),
                items.get(name),
            )
            for name in names
        }

        last_index = {line.item: i for i, line in enumerate(new_lines)}
        lines = tuple(
            line.with_cost(outcomes[line.item].consumed_batches)
            if last_index[line.item] == i
            else line
            for i, line in enumerate(new_lines)
        )

        logger.info("reconcile_completed", extra={
            "item_count": len(names),
            "changed_items": sum(1 for o in outcomes.values() if o.touches_inventory),
        })

        return ReconciliationResult(items=tuple(outcomes.values()), lines=lines)

    def reconcile_item(
        self,
        name: str,
        old: SaleLine | None,
        new: SaleLine | None,
        item: ItemStock | None,
    ) -> ItemReconciliation:
        """Reconcile one item name.  Never raises for inventory trouble."""
        old_qty = self.base_quantity(old, item)
        new_qty = self.base_quantity(new, item)
        old_consumed = old.consumed_batches if old is not None else ()

        with LogContext.bind(item_name=name):
            if item is None:
                logger.warning("reconcile_item_not_found", extra={
                    "old_qty": str(old_qty),
                    "new_qty": str(new_qty),
                })
                result = ItemReconciliation(
                    item_name=name,
                    path=ReconciliationPath.NOT_FOUND,
                    old_qty=old_qty,
                    new_qty=new_qty,
                    item_before=None,
                    item_after=None,
                    consumed_batches=tuple(old_consumed),
                )
            elif not item.has_batches and not old_consumed:
                result = self._flat(name, item, old_qty, new_qty, old_consumed)
            else:
                try:
                    result = self._with_batches(name, item, old_qty, new_qty, old_consumed)
                except (ArithmeticError, ValueError, TypeError):
                    logger.warning("reconcile_item_fallback", exc_info=True, extra={
                        "old_qty": str(old_qty),
                        "new_qty": str(new_qty),
                    })
                    result = self._fallback(name, item, old_qty, new_qty, old_consumed)

            logger.info("reconcile_item_completed", extra={
                "path": result.path.value,
                "old_qty": str(old_qty),
                "new_qty": str(new_qty),
                "delta": str(result.delta),
                "stock_before": str(item.stock) if item is not None else None,
                "stock_after": str(result.item_after.stock) if result.item_after is not None else None,
                "total_cost": str(result.total_cost),
            })
            return result

    # =========================================================================
    # Paths
    # =========================================================================

    def _line_cost(
        self,
        old_qty: Decimal,
        new_qty: Decimal,
        old_consumed: Sequence[ConsumedBatch],
    ) -> tuple[ConsumedBatch, ...]:
        """Cost attribution for a line when no new batches are drawn."""
        if new_qty <= 0:
            return ()
        if new_qty >= old_qty or old_qty == 0:
            return tuple(old_consumed)
        return scale_consumed(old_consumed, new_qty / old_qty)

    def _flat(
        self,
        name: str,
        item: ItemStock,
        old_qty: Decimal,
        new_qty: Decimal,
        old_consumed: Sequence[ConsumedBatch],
    ) -> ItemReconciliation:
        stock_after = max(ZERO, item.stock + old_qty - new_qty)
        return ItemReconciliation(
            item_name=name,
            path=ReconciliationPath.FLAT,
            old_qty=old_qty,
            new_qty=new_qty,
            item_before=item,
            item_after=_with_stock(item, stock_after),
            consumed_batches=self._line_cost(old_qty, new_qty, old_consumed),
            stock_reduced=max(ZERO, item.stock - stock_after),
        )

    def _with_batches(
        self,
        name: str,
        item: ItemStock,
        old_qty: Decimal,
        new_qty: Decimal,
        old_consumed: Sequence[ConsumedBatch],
    ) -> ItemReconciliation:
        delta = new_qty - old_qty

        if delta == 0:
            return ItemReconciliation(
                item_name=name,
                path=ReconciliationPath.UNCHANGED,
                old_qty=old_qty,
                new_qty=new_qty,
                item_before=item,
                item_after=item,
                consumed_batches=tuple(old_consumed),
            )

        if delta > 0:
            restored = ItemStock(
                name=item.name,
                stock=item.stock + old_qty,
                batches=restore_batches(item.batches, old_consumed),
                unit=item.unit,
                purchase_price=item.purchase_price,
            )
            outcome = consume_fifo(restored.batches, delta, item.purchase_price)
            path = (
                ReconciliationPath.CONSUMED
                if outcome.status is ConsumptionStatus.CONSUMED
                else ReconciliationPath.PARTIAL
            )
            after = ItemStock(
                name=item.name,
                stock=restored.stock - outcome.consumed,
                batches=outcome.remaining_batches,
                unit=item.unit,
                purchase_price=item.purchase_price,
            )
            return ItemReconciliation(
                item_name=name,
                path=path,
                old_qty=old_qty,
                new_qty=new_qty,
                item_before=item,
                item_after=after,
                consumed_batches=tuple(old_consumed) + outcome.taken,
                stock_reduced=outcome.consumed,
            )

        if new_qty > 0:
            return ItemReconciliation(
                item_name=name,
                path=ReconciliationPath.REDUCED,
                old_qty=old_qty,
                new_qty=new_qty,
                item_before=item,
                item_after=item,
                consumed_batches=scale_consumed(old_consumed, new_qty / old_qty),
            )

        after = ItemStock(
            name=item.name,
            stock=item.stock + old_qty,
            batches=restore_batches(item.batches, old_consumed),
            unit=item.unit,
            purchase_price=item.purchase_price,
        )
        return ItemReconciliation(
            item_name=name,
            path=ReconciliationPath.REMOVED,
            old_qty=old_qty,
            new_qty=new_qty,
            item_before=item,
            item_after=after,
            consumed_batches=(),
        )

    def _fallback(
        self,
        name: str,
        item: ItemStock,
        old_qty: Decimal,
        new_qty: Decimal,
        old_consumed: Sequence[ConsumedBatch],
    ) -> ItemReconciliation:
        """
        Coarse accounting over the batch snapshot taken before restore.

        For an increase, the stock reduction is min(delta, stock + old) and
        is distributed over the untouched batches; otherwise the flat
        adjustment applies.
        """
        delta = new_qty - old_qty
        restored_stock = item.stock + old_qty

        if delta > 0:
            outcome = fallback_consume(item.batches, restored_stock, delta, item.purchase_price)
            after = ItemStock(
                name=item.name,
                stock=max(ZERO, restored_stock - outcome.consumed),
                batches=outcome.remaining_batches,
                unit=item.unit,
                purchase_price=item.purchase_price,
            )
            return ItemReconciliation(
                item_name=name,
                path=ReconciliationPath.FALLBACK,
                old_qty=old_qty,
                new_qty=new_qty,
                item_before=item,
                item_after=after,
                consumed_batches=tuple(old_consumed) + outcome.taken,
                stock_reduced=outcome.consumed,
            )

        stock_after = max(ZERO, restored_stock - new_qty)
        return ItemReconciliation(
            item_name=name,
            path=ReconciliationPath.FALLBACK,
            old_qty=old_qty,
            new_qty=new_qty,
            item_before=item,
            item_after=_with_stock(item, stock_after),
            consumed_batches=self._line_cost(old_qty, new_qty, old_consumed),
        )


def _with_stock(item: ItemStock, stock: Decimal) -> ItemStock:
    return ItemStock(
        name=item.name,
        stock=stock,
        batches=item.batches,
        unit=item.unit,
        purchase_price=item.purchase_price,
    )
