"""
Module: inventory_kernel.models.sale
Responsibility: ORM persistence for sales and their line items.  Each line
    stores the cost layers it drew on (``consumed_batches``) and the derived
    ``total_cost`` used for margin reporting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Invoice numbers are unique per user (uq_sale_user_invoice).
    - Lines are ordered by ``position`` and owned by their sale
      (delete-orphan cascade).
    - total_cost == sum(quantity * purchase_price) over consumed_batches.
      The sale service is the only writer of both fields.

consumed_batches is a JSON list of ``{"quantity": str, "purchase_price": str}``
objects.  Decimals are stored as strings so no precision is lost.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase, UUIDString


class SaleModel(TrackedBase):
    """A recorded sale (invoice) with its aggregate totals."""

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("user_id", "invoice_no", name="uq_sale_user_invoice"),
        Index("idx_sale_user_party", "user_id", "party_name"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_no: Mapped[str] = mapped_column(String(64), nullable=False)
    party_name: Mapped[str] = mapped_column(String(200), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(30), nullable=False, default="Credit")

    discount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(10), nullable=False, default="%")
    discount_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    tax_type: Mapped[str] = mapped_column(String(10), nullable=False, default="%")
    tax_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    grand_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    received: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    # Party balance right after this sale was posted or last edited
    party_balance_after: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list[SaleLineModel]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLineModel.position",
    )

    def __repr__(self) -> str:
        return f"<Sale {self.invoice_no}: party={self.party_name!r} total={self.grand_total}>"


class SaleLineModel(Base):
    """One line item of a sale."""

    __tablename__ = "sale_lines"

    __table_args__ = (
        Index("idx_sale_line_sale_position", "sale_id", "position"),
    )

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    qty: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    total_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    consumed_batches: Mapped[list | None] = mapped_column(JSON, nullable=True)

    sale: Mapped[SaleModel] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<SaleLine {self.item_name!r}: {self.qty} {self.unit} cost={self.total_cost}>"
