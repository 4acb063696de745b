"""
inventory_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure engines
    (inventory_engines/) with database sessions.  This is the only layer
    that holds sessions or reads the clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

        inventory_services/ -> inventory_engines/  (allowed)
        inventory_services/ -> inventory_kernel/   (allowed)
        inventory_engines/  -> inventory_services/ (FORBIDDEN)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)
"""

from inventory_kernel.logging_config import get_logger

logger = get_logger("services")

from inventory_services.bootstrap import bootstrap
from inventory_services.inventory_service import InventoryService
from inventory_services.party_ledger import PartyLedger
from inventory_services.sale_service import (
    SaleDraft,
    SaleService,
    update_sale_with_retry,
)

__all__ = [
    "InventoryService",
    "bootstrap",
    "PartyLedger",
    "SaleDraft",
    "SaleService",
    "update_sale_with_retry",
]
