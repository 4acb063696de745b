"""
inventory_services.party_ledger -- Running receivable balances per party.

Responsibility:
    Look up or auto-create parties and move their receivable balance when sales
    are created, edited or deleted.

Architecture position:
    Services -- flushes only; the caller commits.

Invariants enforced:
    - A party is identified by (user_id, name).
    - Adjusting a party that does not exist is a logged no-op, so a sale
      whose party was deleted can still be edited or removed.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.party import PartyModel, PartyType
from inventory_services.base import BaseService

logger = get_logger("services.party_ledger")

ZERO = Decimal("0")


class PartyLedger(BaseService[PartyModel]):
    """Party lookup and balance adjustment."""

    def get(self, user_id: str, name: str) -> PartyModel | None:
        return self.session.execute(
            select(PartyModel).where(
                PartyModel.user_id == user_id,
                PartyModel.name == name,
            )
        ).scalar_one_or_none()

    def get_or_create(
        self,
        user_id: str,
        name: str,
        phone: str | None = None,
        party_type: PartyType = PartyType.CUSTOMER,
        note: str = "Auto-created from sale",
    ) -> tuple[PartyModel, bool]:
        """Return ``(party, created)``."""
        party = self.get(user_id, name)
        if party is not None:
            return party, False

        party = PartyModel(
            user_id=user_id,
            name=name,
            phone=phone,
            party_type=party_type.value,
            balance=ZERO,
            note=note,
        )
        self.session.add(party)
        self.session.flush()

        logger.info("party_created", extra={
            "party_name": name,
            "party_type": party_type.value,
        })
        return party, True

    def balance_of(self, user_id: str, name: str) -> Decimal:
        party = self.get(user_id, name)
        return party.balance if party is not None else ZERO

    def adjust(self, user_id: str, name: str, amount: Decimal) -> Decimal | None:
        """
        Add ``amount`` (may be negative) to the party balance.

        Returns the new balance, or None when the party does not exist.
        """
        party = self.get(user_id, name)
        if party is None:
            logger.warning("party_adjust_skipped_not_found", extra={
                "party_name": name,
                "amount": str(amount),
            })
            return None
        if not amount:
            return party.balance

        before = party.balance
        party.balance = before + amount
        self.session.flush()

        logger.info("party_balance_adjusted", extra={
            "party_name": name,
            "amount": str(amount),
            "balance_before": str(before),
            "balance_after": str(party.balance),
        })
        return party.balance

    def apply_sale_change(
        self,
        user_id: str,
        old_party: str,
        old_credit: Decimal,
        new_party: str,
        new_credit: Decimal,
    ) -> None:
        """
        Move a sale's credit from its old state to its new state.

        Same party: the balance moves by ``new_credit - old_credit``.
        Different parties: the old party gives back ``old_credit`` and the
        new party takes on ``new_credit``.
        """
        if old_party == new_party:
            self.adjust(user_id, new_party, new_credit - old_credit)
            return
        self.adjust(user_id, old_party, -old_credit)
        self.adjust(user_id, new_party, new_credit)
