"""
Units -- conversion of sale-line quantities to an item's base unit.

Responsibility:
    Describe how an inventory item is measured and convert a quantity
    recorded in a sale line (which may be in the item's secondary unit)
    into the item's base unit before any stock arithmetic happens.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Two unit shapes exist in stored data:
    - Structured: ``{base, secondary, conversion_factor}``.  A line in the
      secondary unit is multiplied by ``conversion_factor``.
    - Legacy label: a string such as ``"box / piece"``.  There is no stored
      factor, so a line in the secondary part is multiplied by the
      configured legacy factor (default 12).
Anything else is already in base units.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

LEGACY_SEPARATOR = " / "
DEFAULT_LEGACY_FACTOR = Decimal("12")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce a stored number (str, int, float, Decimal, None) to Decimal."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True, slots=True)
class UnitSpec:
    """
    Unit of measure for an inventory item.

    Guarantees:
        - Immutable and hashable.
        - ``is_structured`` is True only when both base and secondary are set.
    """

    base: str | None = None
    secondary: str | None = None
    conversion_factor: Decimal | None = None
    label: str | None = None

    @property
    def is_structured(self) -> bool:
        return bool(self.base and self.secondary)

    @property
    def legacy_parts(self) -> tuple[str, str] | None:
        """``(base, secondary)`` parsed from a ``"base / secondary"`` label."""
        if self.is_structured or not self.label or LEGACY_SEPARATOR not in self.label:
            return None
        base, secondary = self.label.split(LEGACY_SEPARATOR, 1)
        return base, secondary

    @classmethod
    def parse(cls, value: Any) -> UnitSpec:
        """Build a UnitSpec from a stored mapping, a label string or None."""
        if value is None:
            return cls()
        if isinstance(value, UnitSpec):
            return value
        if isinstance(value, str):
            return cls(label=value)
        if isinstance(value, Mapping):
            factor = value.get("conversion_factor", value.get("conversionFactor"))
            return cls(
                base=value.get("base") or None,
                secondary=value.get("secondary") or None,
                conversion_factor=to_decimal(factor) if factor not in (None, "") else None,
                label=value.get("label"),
            )
        raise TypeError(f"Cannot build a unit from {type(value).__name__}")

    def to_base(
        self,
        quantity: Decimal,
        line_unit: str | None,
        legacy_factor: Decimal = DEFAULT_LEGACY_FACTOR,
    ) -> Decimal:
        """
        Convert ``quantity`` recorded in ``line_unit`` to base units.

        Postconditions:
            - Returns ``quantity`` unchanged unless ``line_unit`` is the
              secondary unit of this item.
        """
        if self.is_structured:
            if line_unit == self.secondary and self.conversion_factor:
                return quantity * self.conversion_factor
            return quantity

        parts = self.legacy_parts
        if parts is not None and line_unit == parts[1]:
            return quantity * legacy_factor
        return quantity
