"""ORM models. Importing this package registers every table on Base.metadata."""

from inventory_kernel.models.item import InventoryBatchModel, InventoryItemModel
from inventory_kernel.models.party import PartyModel, PartyType
from inventory_kernel.models.sale import SaleLineModel, SaleModel

__all__ = [
    "InventoryItemModel",
    "InventoryBatchModel",
    "SaleModel",
    "SaleLineModel",
    "PartyModel",
    "PartyType",
]
