"""
Module: inventory_engines
Responsibility:
    Canonical import surface for the pure calculation engines used by
    inventory_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import inventory_kernel.domain values and logging.
    MUST NOT import inventory_services or inventory_kernel.models.

Invariants enforced:
    - Decimal-only arithmetic; floats are converted at the boundary.
    - Determinism: identical inputs always produce identical outputs.
      Timestamps are never generated here.

Audit relevance:
    Engine entrypoints are wrapped by ``@traced_engine`` and emit an
    ENGINE_TRACE record per call.

Usage:
    from inventory_engines import BatchReconciliationEngine, SaleLine
    from inventory_engines.valuation import CostBatch, consume_fifo
"""

from inventory_engines.reconciliation import (
    BatchReconciliationEngine,
    ItemReconciliation,
    ReconciliationPath,
    ReconciliationResult,
)
from inventory_engines.sale_line import SaleLine
from inventory_engines.sale_totals import (
    SaleTotals,
    compute_sale_totals,
    credit_amount,
    line_amount,
)

__all__ = [
    "BatchReconciliationEngine",
    "ItemReconciliation",
    "ReconciliationPath",
    "ReconciliationResult",
    "SaleLine",
    "SaleTotals",
    "compute_sale_totals",
    "credit_amount",
    "line_amount",
]
