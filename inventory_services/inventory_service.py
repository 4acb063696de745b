"""
inventory_services.inventory_service -- Item store with FIFO cost batches.

Responsibility:
    Load and lock inventory items, convert them to and from the pure
    ``ItemStock`` snapshots the engines work on, record purchase receipts
    as new cost layers, and apply stock reductions and restores.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Pure FIFO math lives in inventory_engines.valuation.cost_batch; this
    module only moves snapshots in and out of InventoryItemModel rows.

Invariants enforced:
    - Batch rows are rewritten with a fresh 1..n ``sequence`` whenever a
      snapshot is applied, so FIFO order survives round trips.
    - Every write bumps the item's ``version``; a write against a row that
      changed underneath raises OptimisticLockError.
    - reduce_stock never lets stock go below zero.

Failure modes:
    - ItemNotFoundError from require_item / receive_stock.
    - DuplicateItemError from create_item.
    - InsufficientStockError from reduce_stock when stock < quantity.
    - InvalidQuantityError for negative quantities.
    - OptimisticLockError from any flush that hits a stale item version.

Audit relevance:
    Receipts, reductions and restores are logged with the item name,
    quantity and resulting stock.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from inventory_engines.valuation.cost_batch import (
    ConsumedBatch,
    CostBatch,
    ItemStock,
    consume_fifo,
    restore_batches,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.units import UnitSpec
from inventory_kernel.exceptions import (
    DuplicateItemError,
    InsufficientStockError,
    InvalidQuantityError,
    ItemNotFoundError,
    OptimisticLockError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import InventoryBatchModel, InventoryItemModel
from inventory_services.base import BaseService

logger = get_logger("services.inventory")

ZERO = Decimal("0")


class InventoryService(BaseService[InventoryItemModel]):
    """
    Persistence side of FIFO inventory.

    Contract:
        All writes go through ``apply()``, which replaces the item's stock
        and batch rows from an ItemStock snapshot and flushes.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self.clock = clock or SystemClock()

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_item(
        self,
        user_id: str,
        name: str,
        for_update: bool = False,
    ) -> InventoryItemModel | None:
        stmt = select(InventoryItemModel).where(
            InventoryItemModel.user_id == user_id,
            InventoryItemModel.name == name,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def require_item(
        self,
        user_id: str,
        name: str,
        for_update: bool = False,
    ) -> InventoryItemModel:
        item = self.get_item(user_id, name, for_update=for_update)
        if item is None:
            raise ItemNotFoundError(name, user_id)
        return item

    def load_items(
        self,
        user_id: str,
        names: Sequence[str],
    ) -> dict[str, InventoryItemModel | None]:
        """Lock and load every named item; missing names map to None."""
        return {
            name: self.get_item(user_id, name, for_update=True)
            for name in dict.fromkeys(names)
        }

    # =========================================================================
    # Item lifecycle
    # =========================================================================

    def create_item(
        self,
        user_id: str,
        name: str,
        unit: UnitSpec | dict | str | None = None,
        purchase_price: Decimal = ZERO,
    ) -> InventoryItemModel:
        if self.get_item(user_id, name) is not None:
            raise DuplicateItemError(name, user_id)

        spec = UnitSpec.parse(unit)
        item = InventoryItemModel(
            user_id=user_id,
            name=name,
            stock=ZERO,
            purchase_price=purchase_price,
            unit_base=spec.base,
            unit_secondary=spec.secondary,
            conversion_factor=spec.conversion_factor,
            unit_label=spec.label,
        )
        self.session.add(item)
        self.session.flush()

        logger.info("inventory_item_created", extra={
            "item_name": name,
            "unit": spec.label or spec.base,
        })
        return item

    def receive_stock(
        self,
        user_id: str,
        name: str,
        quantity: Decimal,
        purchase_price: Decimal | None = None,
        received_at: datetime | None = None,
    ) -> ItemStock:
        """
        Record a purchase receipt as a new cost layer at the end of the queue.

        ``purchase_price`` defaults to the item's purchase price.
        """
        if quantity <= 0:
            raise InvalidQuantityError(str(quantity), "received quantity must be positive")

        item = self.require_item(user_id, name, for_update=True)
        current = self.snapshot(item)
        price = purchase_price if purchase_price is not None else current.purchase_price
        layer = CostBatch(
            quantity=quantity,
            purchase_price=price,
            created_at=received_at or self.clock.now(),
        )
        updated = _restock(current, current.stock + quantity, current.batches + (layer,))
        self.apply(item, updated)

        logger.info("inventory_stock_received", extra={
            "item_name": name,
            "quantity": str(quantity),
            "purchase_price": str(price),
            "stock_after": str(updated.stock),
        })
        return updated

    # =========================================================================
    # Stock movement
    # =========================================================================

    def reduce_stock(
        self,
        item: InventoryItemModel,
        quantity: Decimal,
    ) -> tuple[ConsumedBatch, ...]:
        """
        Primary stock mutator: take ``quantity`` FIFO and return the pairs.

        When stock covers the request but the batches do not (legacy stock
        with no layers), the uncovered remainder is attributed at the last
        batch's price, or the item's purchase price.

        Raises:
            InvalidQuantityError: If quantity is negative.
            InsufficientStockError: If stock < quantity.
        """
        if quantity < 0:
            raise InvalidQuantityError(str(quantity), "quantity cannot be negative")
        if item.stock < quantity:
            logger.warning("inventory_insufficient_stock", extra={
                "item_name": item.name,
                "requested": str(quantity),
                "available": str(item.stock),
            })
            raise InsufficientStockError(item.name, str(quantity), str(item.stock))

        current = self.snapshot(item)
        outcome = consume_fifo(current.batches, quantity, current.purchase_price)

        taken = outcome.taken
        if outcome.shortfall > 0:
            last_price = current.batches[-1].purchase_price if current.batches else ZERO
            taken = taken + (
                ConsumedBatch(
                    quantity=outcome.shortfall,
                    purchase_price=last_price or current.purchase_price,
                ),
            )

        self.apply(item, _restock(current, current.stock - quantity, outcome.remaining_batches))

        logger.info("inventory_stock_reduced", extra={
            "item_name": item.name,
            "quantity": str(quantity),
            "stock_after": str(item.stock),
        })
        return taken

    def restore_stock(
        self,
        item: InventoryItemModel,
        quantity: Decimal,
        consumed: Sequence[ConsumedBatch] = (),
    ) -> ItemStock:
        """Put ``quantity`` back on hand and return ``consumed`` to its layers."""
        current = self.snapshot(item)
        updated = _restock(
            current,
            current.stock + quantity,
            restore_batches(current.batches, consumed),
        )
        self.apply(item, updated)

        logger.info("inventory_stock_restored", extra={
            "item_name": item.name,
            "quantity": str(quantity),
            "stock_after": str(updated.stock),
        })
        return updated

    # =========================================================================
    # Snapshot conversion
    # =========================================================================

    @staticmethod
    def snapshot(item: InventoryItemModel) -> ItemStock:
        """Convert ORM model to the engines' ItemStock."""
        return ItemStock(
            name=item.name,
            stock=item.stock,
            batches=tuple(
                CostBatch(
                    quantity=b.quantity,
                    purchase_price=b.purchase_price,
                    created_at=b.created_at,
                )
                for b in sorted(item.batches, key=lambda b: b.sequence)
            ),
            unit=UnitSpec(
                base=item.unit_base,
                secondary=item.unit_secondary,
                conversion_factor=item.conversion_factor,
                label=item.unit_label,
            ),
            purchase_price=item.purchase_price or ZERO,
        )

    def apply(self, item: InventoryItemModel, stock: ItemStock) -> None:
        """
        Write ``stock`` back onto ``item``: stock figure plus batch rows.

        Raises:
            OptimisticLockError: If the item row changed since it was loaded.
        """
        now = self.clock.now()
        item.stock = stock.stock
        item.batches.clear()
        for sequence, batch in enumerate(stock.batches, start=1):
            item.batches.append(
                InventoryBatchModel(
                    sequence=sequence,
                    quantity=batch.quantity,
                    purchase_price=batch.purchase_price,
                    created_at=batch.created_at or now,
                )
            )
        # Batch-only changes must still bump the item version.
        flag_modified(item, "stock")

        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("inventory_item_version_conflict", extra={
                "item_name": item.name,
                "item_id": str(item.id),
            })
            raise OptimisticLockError("InventoryItem", str(item.id)) from exc


def _restock(
    current: ItemStock,
    stock: Decimal,
    batches: tuple[CostBatch, ...],
) -> ItemStock:
    return ItemStock(
        name=current.name,
        stock=stock,
        batches=batches,
        unit=current.unit,
        purchase_price=current.purchase_price,
    )
