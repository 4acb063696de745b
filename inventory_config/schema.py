"""
Configuration schema (``inventory_config.schema``).

Frozen dataclasses produced by the loader.  Every field has a default, so
an empty settings file yields the stock behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from inventory_kernel.domain.units import DEFAULT_LEGACY_FACTOR


@dataclass(frozen=True)
class InventorySettings:
    """
    Runtime settings for the inventory services.

    ``legacy_secondary_factor`` converts secondary-unit quantities for items
    whose unit is a legacy ``"base / secondary"`` label.
    ``max_conflict_retries`` bounds update_sale_with_retry.
    """

    legacy_secondary_factor: Decimal = DEFAULT_LEGACY_FACTOR
    default_line_unit: str = "Piece"
    credit_payment_type: str = "Credit"
    payment_types: tuple[str, ...] = ("Cash", "Credit")
    invoice_prefix: str = "INV"
    max_conflict_retries: int = 3
    database_url: str = "sqlite:///inventory.db"
    log_level: str = "INFO"
    checksum: str = field(default="", compare=False)
