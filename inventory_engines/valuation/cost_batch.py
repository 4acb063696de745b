"""
inventory_engines.valuation.cost_batch -- FIFO cost batch value objects.

Responsibility:
    Define immutable value objects for inventory cost batches, the portions
    of batches attributed to a sale line, and item stock snapshots.  Provide
    the pure FIFO walk, batch restore, proportional scaling and the manual
    fallback walk used when the primary consumption path cannot be trusted.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import inventory_kernel.domain values and logging.
    Persistence of batches lives in inventory_services.inventory_service.

Invariants enforced:
    - Every operation returns NEW tuples; input batches are never mutated,
      so each FIFO walk can be tested on its own.
    - FIFO order: consumption always drains the first batch in the tuple
      before touching later ones.
    - Exhausted batches are pruned from the returned tuple.
    - total_cost(consumed) == sum(quantity * purchase_price).

Failure modes:
    - ValueError from consume_fifo / fallback_consume for a negative quantity.
    - Shortfall is NOT an error: consume_fifo reports PARTIAL with the amount
      actually taken.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from inventory_kernel.domain.units import UnitSpec
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.valuation.cost_batch")

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class CostBatch:
    """
    Immutable FIFO cost layer: a quantity of stock bought at one price.

    ``created_at`` is None for a layer rebuilt from a restored sale line
    whose original batch no longer exists.
    """

    quantity: Decimal
    purchase_price: Decimal
    created_at: datetime | None = None

    @property
    def value(self) -> Decimal:
        return self.quantity * self.purchase_price


@dataclass(frozen=True, slots=True)
class ConsumedBatch:
    """Portion of a cost layer attributed to a sale line."""

    quantity: Decimal
    purchase_price: Decimal

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.purchase_price

    def to_dict(self) -> dict[str, str]:
        return {
            "quantity": str(self.quantity),
            "purchase_price": str(self.purchase_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ConsumedBatch:
        price = data.get("purchase_price", data.get("purchasePrice", "0"))
        return cls(
            quantity=Decimal(str(data.get("quantity", "0"))),
            purchase_price=Decimal(str(price)),
        )


@dataclass(frozen=True, slots=True)
class ItemStock:
    """
    Snapshot of an inventory item's stock and cost layers.

    ``stock`` and ``sum(batches.quantity)`` should agree, but legacy items
    may carry stock with no batches at all.
    """

    name: str
    stock: Decimal
    batches: tuple[CostBatch, ...] = ()
    unit: UnitSpec = field(default_factory=UnitSpec)
    purchase_price: Decimal = ZERO

    @property
    def batch_total(self) -> Decimal:
        return sum((b.quantity for b in self.batches), ZERO)

    @property
    def has_batches(self) -> bool:
        return bool(self.batches)


class ConsumptionStatus(str, Enum):
    """Outcome tag of a consumption attempt."""

    CONSUMED = "consumed"    # Requested quantity fully satisfied
    PARTIAL = "partial"      # Ran out of batches; less than requested taken


@dataclass(frozen=True, slots=True)
class ConsumptionOutcome:
    """
    Result of consuming a quantity from an ordered batch list.

    ``consumed`` is the amount actually taken (<= requested).
    ``remaining_batches`` is the new batch tuple after consumption.
    """

    status: ConsumptionStatus
    requested: Decimal
    consumed: Decimal
    taken: tuple[ConsumedBatch, ...]
    remaining_batches: tuple[CostBatch, ...]

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.consumed

    @property
    def total_cost(self) -> Decimal:
        return total_cost(self.taken)


def total_cost(consumed: Iterable[ConsumedBatch]) -> Decimal:
    """Sum of quantity * purchase_price over consumed batches."""
    return sum((c.cost for c in consumed), ZERO)


def total_quantity(consumed: Iterable[ConsumedBatch]) -> Decimal:
    return sum((c.quantity for c in consumed), ZERO)


def round_half_up(value: Decimal) -> Decimal:
    """Round to a whole unit, halves away from zero."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _price_of(batch: CostBatch, fallback_price: Decimal) -> Decimal:
    return batch.purchase_price if batch.purchase_price else fallback_price


def consume_fifo(
    batches: Sequence[CostBatch],
    quantity: Decimal,
    fallback_price: Decimal = ZERO,
) -> ConsumptionOutcome:
    """
    Consume ``quantity`` from ``batches`` oldest-first.

    Preconditions:
        quantity >= 0.

    Postconditions:
        - consumed == min(quantity, sum of batch quantities).
        - status is CONSUMED when consumed == quantity, else PARTIAL.
        - remaining_batches keeps untouched layers as-is and drops layers
          that reached zero.

    Raises:
        ValueError: If quantity is negative.
    """
    if quantity < 0:
        logger.error("fifo_negative_quantity", extra={"quantity": str(quantity)})
        raise ValueError(f"Cannot consume a negative quantity: {quantity}")

    remaining = quantity
    taken: list[ConsumedBatch] = []
    kept: list[CostBatch] = []

    for batch in batches:
        if remaining <= 0:
            kept.append(batch)
            continue

        take = min(batch.quantity, remaining)
        if take > 0:
            taken.append(ConsumedBatch(quantity=take, purchase_price=_price_of(batch, fallback_price)))
            remaining -= take

            logger.debug("batch_consumed", extra={
                "qty_consumed": str(take),
                "unit_cost": str(_price_of(batch, fallback_price)),
                "left_in_batch": str(batch.quantity - take),
            })

        left = batch.quantity - max(take, ZERO)
        if left > 0:
            kept.append(replace(batch, quantity=left))

    consumed = quantity - remaining
    status = ConsumptionStatus.CONSUMED if remaining <= 0 else ConsumptionStatus.PARTIAL

    if status is ConsumptionStatus.PARTIAL:
        logger.warning("fifo_partial_consumption", extra={
            "requested": str(quantity),
            "consumed": str(consumed),
            "shortfall": str(remaining),
        })

    return ConsumptionOutcome(
        status=status,
        requested=quantity,
        consumed=consumed,
        taken=tuple(taken),
        remaining_batches=tuple(kept),
    )


def fallback_consume(
    batches: Sequence[CostBatch],
    stock: Decimal,
    quantity: Decimal,
    fallback_price: Decimal = ZERO,
) -> ConsumptionOutcome:
    """
    Manual FIFO walk bounded by the stock figure rather than the batches.

    Used when the primary path failed.  The stock reduction is
    ``min(quantity, stock)`` even if the batches hold less than that; the
    batch walk attributes cost for as much as the batches can cover.

    Postconditions:
        - consumed == min(quantity, max(stock, 0)).
        - remaining_batches has empty layers pruned.
    """
    if quantity < 0:
        raise ValueError(f"Cannot consume a negative quantity: {quantity}")

    actual = min(quantity, max(stock, ZERO))
    walk = consume_fifo(batches, actual, fallback_price)

    return ConsumptionOutcome(
        status=ConsumptionStatus.CONSUMED if actual == quantity else ConsumptionStatus.PARTIAL,
        requested=quantity,
        consumed=actual,
        taken=walk.taken,
        remaining_batches=walk.remaining_batches,
    )


def restore_batches(
    batches: Sequence[CostBatch],
    consumed: Iterable[ConsumedBatch],
) -> tuple[CostBatch, ...]:
    """
    Return consumed pairs to the cost layers they came from.

    Each pair is added to the first layer with the same purchase price.  A
    pair with no matching layer becomes a new layer at the front, since it
    is older than anything still on hand.
    """
    layers = list(batches)
    revived: list[CostBatch] = []

    for pair in consumed:
        if pair.quantity <= 0:
            continue
        idx = next(
            (i for i, b in enumerate(layers) if b.purchase_price == pair.purchase_price),
            None,
        )
        if idx is not None:
            layers[idx] = replace(layers[idx], quantity=layers[idx].quantity + pair.quantity)
            continue
        ridx = next(
            (i for i, b in enumerate(revived) if b.purchase_price == pair.purchase_price),
            None,
        )
        if ridx is not None:
            revived[ridx] = replace(revived[ridx], quantity=revived[ridx].quantity + pair.quantity)
        else:
            revived.append(CostBatch(quantity=pair.quantity, purchase_price=pair.purchase_price))

    return tuple(revived + layers)


def scale_consumed(
    consumed: Iterable[ConsumedBatch],
    ratio: Decimal,
) -> tuple[ConsumedBatch, ...]:
    """
    Shrink each consumed pair by ``ratio``, rounding each to a whole unit.

    Pairs that round to zero are dropped.  Rounding is per pair, so the
    scaled total may drift from round(total * ratio) by up to half a unit
    per pair.
    """
    scaled: list[ConsumedBatch] = []
    for pair in consumed:
        qty = round_half_up(pair.quantity * ratio)
        if qty > 0:
            scaled.append(ConsumedBatch(quantity=qty, purchase_price=pair.purchase_price))
    return tuple(scaled)
