"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for inventory items and their FIFO cost
    batches.  An item carries the live ``stock`` figure; each batch row is one
    cost layer (a quantity purchased at a specific price).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Item names are unique per user (uq_inventory_item_user_name).
    - Batches are ordered by ``sequence``; FIFO consumption walks them in
      that order.  Sequence is rewritten whenever the batch list is replaced.
    - Optimistic locking: ``version`` is a SQLAlchemy version_id_col, so an
      UPDATE against a row that changed since it was loaded raises
      StaleDataError.  The inventory service converts that into
      OptimisticLockError.
    - Best-effort: sum(batches.quantity) == stock.  Legacy items may have
      stock but no batches at all.

Failure modes:
    - IntegrityError on a duplicate (user_id, name).
    - StaleDataError on a concurrent update of the same item row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase, UUIDString


class InventoryItemModel(TrackedBase):
    """
    Persistent inventory item.

    Contract:
        ``stock`` is the total quantity on hand in the item's base unit.
        The unit is stored either as structured columns (unit_base,
        unit_secondary, conversion_factor) or as a legacy ``unit_label``.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_inventory_item_user_name"),
        Index("idx_inventory_item_user", "user_id"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    stock: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    # Fallback price for batches recorded without one
    purchase_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    unit_base: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unit_secondary: Mapped[str | None] = mapped_column(String(50), nullable=True)
    conversion_factor: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )
    unit_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    batches: Mapped[list[InventoryBatchModel]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="InventoryBatchModel.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<InventoryItem {self.name!r}: stock={self.stock} batches={len(self.batches)}>"


class InventoryBatchModel(Base):
    """One FIFO cost layer of an inventory item."""

    __tablename__ = "inventory_batches"

    __table_args__ = (
        Index("idx_inventory_batch_item_sequence", "item_id", "sequence"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    purchase_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    item: Mapped[InventoryItemModel] = relationship(back_populates="batches")

    def __repr__(self) -> str:
        return f"<InventoryBatch #{self.sequence}: {self.quantity} @ {self.purchase_price}>"
