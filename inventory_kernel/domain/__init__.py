"""Pure domain values for the inventory kernel."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.units import (
    DEFAULT_LEGACY_FACTOR,
    UnitSpec,
    to_decimal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DEFAULT_LEGACY_FACTOR",
    "UnitSpec",
    "to_decimal",
]
