"""
Module: inventory_kernel.models.party
Responsibility: ORM persistence for parties (customers and suppliers) and
    their running balance.  Credit sales increase the balance; deleting or
    editing a credit sale moves it back.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    """Classification of party types."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class PartyModel(TrackedBase):
    """A customer or supplier with a running balance."""

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_party_user_name"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    party_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PartyType.CUSTOMER.value,
    )
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Receivable balance, seeded from the opening balance
    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Party {self.name!r}: balance={self.balance}>"
