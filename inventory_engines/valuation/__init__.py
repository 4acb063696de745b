"""
Valuation - Pure FIFO cost batch objects.

Persistence of batches lives in inventory_services.inventory_service.
"""

from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.valuation")

from inventory_engines.valuation.cost_batch import (
    ConsumedBatch,
    ConsumptionOutcome,
    ConsumptionStatus,
    CostBatch,
    ItemStock,
    consume_fifo,
    fallback_consume,
    restore_batches,
    round_half_up,
    scale_consumed,
    total_cost,
    total_quantity,
)

__all__ = [
    "CostBatch",
    "ConsumedBatch",
    "ItemStock",
    "ConsumptionStatus",
    "ConsumptionOutcome",
    "consume_fifo",
    "fallback_consume",
    "restore_batches",
    "scale_consumed",
    "round_half_up",
    "total_cost",
    "total_quantity",
]
