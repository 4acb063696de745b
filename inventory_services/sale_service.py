"""
inventory_services.sale_service -- Create, edit and delete sales.

Responsibility:
    Orchestrate a sale's full effect: FIFO stock consumption per line,
    invoice totals, and the party's receivable balance.  On edit, run the
    batch reconciliation engine over the old and new lines and persist the
    resulting item snapshots and line cost attribution.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes InventoryService (item rows), PartyLedger (balances),
    BatchReconciliationEngine and compute_sale_totals (pure math).

Invariants enforced:
    - Every item touched by an edit is loaded FOR UPDATE before the engine
      runs, and written back with a version check.
    - Each line's total_cost equals the sum over its consumed batches.
    - A stock shortfall never fails a sale: create degrades to the manual
      FIFO walk; update degrades inside the engine.
    - All writes of one call flush inside the caller's transaction.

Failure modes:
    - SaleNotFoundError: sale id unknown for the user.
    - DuplicateInvoiceError: invoice number already used.
    - InvalidSaleError: no party, no lines, or unknown payment type.
    - InvalidQuantityError: a negative line quantity.
    - OptimisticLockError: an item changed under a concurrent edit.
      update_sale_with_retry retries these in a fresh transaction.

Audit relevance:
    sale_created / sale_update_completed / sale_deleted carry the totals
    and per-item paths; the engine logs each item decision.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import InventorySettings
from inventory_engines.reconciliation import BatchReconciliationEngine
from inventory_engines.sale_line import SaleLine
from inventory_engines.sale_totals import (
    SaleTotals,
    compute_sale_totals,
    credit_amount,
    line_amount,
)
from inventory_engines.valuation.cost_batch import (
    ConsumedBatch,
    ItemStock,
    fallback_consume,
)
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock
from inventory_kernel.exceptions import (
    DuplicateInvoiceError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidSaleError,
    OptimisticLockError,
    SaleNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.sale import SaleLineModel, SaleModel
from inventory_services.base import BaseService
from inventory_services.inventory_service import InventoryService
from inventory_services.party_ledger import PartyLedger

logger = get_logger("services.sale")

ZERO = Decimal("0")


@dataclass(frozen=True)
class SaleDraft:
    """
    Requested state of a sale.

    On update, ``payment_type`` and ``received`` left as None keep the
    sale's current values.  On create they default to the credit payment
    type and zero.
    """

    party_name: str
    lines: tuple[SaleLine, ...]
    payment_type: str | None = None
    discount: Decimal = ZERO
    discount_type: str = "%"
    tax: Decimal = ZERO
    tax_type: str = "%"
    received: Decimal | None = None
    invoice_no: str | None = None
    phone: str | None = None
    description: str | None = None


class SaleService(BaseService[SaleModel]):
    """
    Sale lifecycle over inventory and party balances.

    Contract:
        Flushes only; wrap calls in ``session_scope()`` (or use
        ``update_sale_with_retry``) to commit.
    """

    def __init__(
        self,
        session: Session,
        settings: InventorySettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self.settings = settings or InventorySettings()
        self.inventory = InventoryService(session, clock)
        self.parties = PartyLedger(session)
        self.engine = BatchReconciliationEngine(
            legacy_secondary_factor=self.settings.legacy_secondary_factor,
            default_line_unit=self.settings.default_line_unit,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_sale(self, user_id: str, sale_id: UUID | str) -> SaleModel:
        try:
            key = UUID(str(sale_id))
        except ValueError as exc:
            raise SaleNotFoundError(str(sale_id), user_id) from exc

        sale = self.session.execute(
            select(SaleModel).where(
                SaleModel.id == key,
                SaleModel.user_id == user_id,
            )
        ).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(str(sale_id), user_id)
        return sale

    def sale_lines(self, sale: SaleModel) -> tuple[SaleLine, ...]:
        """The sale's stored lines as engine SaleLines."""
        return tuple(_line_from_model(m) for m in sale.lines)

    def next_invoice_no(self, user_id: str) -> str:
        """Next ``<prefix>NNN`` number after the highest one in use."""
        prefix = self.settings.invoice_prefix
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        highest = 0
        for invoice_no in self.session.execute(
            select(SaleModel.invoice_no).where(SaleModel.user_id == user_id)
        ).scalars():
            match = pattern.match(invoice_no)
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{prefix}{highest + 1:03d}"

    # =========================================================================
    # Create
    # =========================================================================

    def create_sale(self, user_id: str, draft: SaleDraft) -> SaleModel:
        """
        Record a new sale, consuming stock FIFO for every line.

        The party is created on first use.  Its receivable grows by
        ``credit_amount``: the full balance on credit, any unpaid rest on cash.
        """
        self._validate(draft)
        payment_type = draft.payment_type or self.settings.credit_payment_type

        with LogContext.bind(user_id=user_id):
            invoice_no = draft.invoice_no or self.next_invoice_no(user_id)
            self._ensure_invoice_free(user_id, invoice_no)

            logger.info("sale_create_started", extra={
                "invoice_no": invoice_no,
                "party_name": draft.party_name,
                "line_count": len(draft.lines),
            })

            party, party_created = self.parties.get_or_create(
                user_id, draft.party_name, phone=draft.phone,
            )

            lines = tuple(self._consume_line(user_id, line) for line in draft.lines)

            totals = compute_sale_totals(
                lines, draft.discount, draft.discount_type, draft.tax, draft.tax_type,
            )
            received = draft.received if draft.received is not None else ZERO

            sale = SaleModel(
                user_id=user_id,
                invoice_no=invoice_no,
                party_name=draft.party_name,
                payment_type=payment_type,
                description=draft.description,
            )
            self._write_totals(sale, draft, totals, received)
            sale.lines = self._line_models(lines)
            self.session.add(sale)
            self.session.flush()

            credit = credit_amount(
                payment_type, totals.grand_total, received,
                self.settings.credit_payment_type,
            )
            sale.party_balance_after = self.parties.adjust(user_id, party.name, credit)
            self.session.flush()

            logger.info("sale_created", extra={
                "sale_id": str(sale.id),
                "invoice_no": invoice_no,
                "party_created": party_created,
                "grand_total": str(sale.grand_total),
                "balance": str(sale.balance),
                "total_cost": str(sum((line.total_cost for line in lines), ZERO)),
            })
            return sale

    def _consume_line(self, user_id: str, line: SaleLine) -> SaleLine:
        item = self.inventory.get_item(user_id, line.item, for_update=True)
        if item is None:
            logger.warning("sale_line_item_not_found", extra={"item_name": line.item})
            return line.with_cost(())

        current = self.inventory.snapshot(item)
        quantity = self.engine.base_quantity(line, current)

        try:
            consumed = self.inventory.reduce_stock(item, quantity)
        except InsufficientStockError:
            outcome = fallback_consume(
                current.batches, current.stock, quantity, current.purchase_price,
            )
            self.inventory.apply(item, ItemStock(
                name=current.name,
                stock=max(ZERO, current.stock - outcome.consumed),
                batches=outcome.remaining_batches,
                unit=current.unit,
                purchase_price=current.purchase_price,
            ))
            consumed = outcome.taken
            logger.warning("sale_line_fallback_consumption", extra={
                "item_name": line.item,
                "requested": str(quantity),
                "consumed": str(outcome.consumed),
            })
        return line.with_cost(consumed)

    # =========================================================================
    # Update
    # =========================================================================

    def update_sale(
        self,
        user_id: str,
        sale_id: UUID | str,
        draft: SaleDraft,
    ) -> SaleModel:
        """
        Replace a sale's lines and terms, reconciling inventory batches.

        Every item named by an old or new line is locked and snapshotted,
        the engine computes the new item state and line costs, and only the
        items whose state changed are written back.
        """
        self._validate(draft)

        with LogContext.bind(user_id=user_id, sale_id=str(sale_id)):
            sale = self.get_sale(user_id, sale_id)
            if draft.invoice_no and draft.invoice_no != sale.invoice_no:
                self._ensure_invoice_free(user_id, draft.invoice_no)

            old_lines = self.sale_lines(sale)
            logger.info("sale_update_started", extra={
                "invoice_no": sale.invoice_no,
                "old_line_count": len(old_lines),
                "new_line_count": len(draft.lines),
            })

            items = self.inventory.load_items(
                user_id, [line.item for line in (*old_lines, *draft.lines)],
            )
            snapshots = {
                name: self.inventory.snapshot(model) if model is not None else None
                for name, model in items.items()
            }

            result = self.engine.reconcile(old_lines, draft.lines, snapshots)
            for outcome in result.changed_items:
                self.inventory.apply(items[outcome.item_name], outcome.item_after)

            payment_type = draft.payment_type or sale.payment_type
            received = draft.received if draft.received is not None else sale.received
            totals = compute_sale_totals(
                result.lines, draft.discount, draft.discount_type, draft.tax, draft.tax_type,
            )

            _, party_created = self.parties.get_or_create(
                user_id, draft.party_name, phone=draft.phone,
                note="Auto-created from sale update",
            )

            credit_type = self.settings.credit_payment_type
            old_credit = credit_amount(sale.payment_type, sale.grand_total, sale.received, credit_type)
            new_credit = credit_amount(payment_type, totals.grand_total, received, credit_type)
            self.parties.apply_sale_change(
                user_id, sale.party_name, old_credit, draft.party_name, new_credit,
            )

            sale.party_name = draft.party_name
            sale.payment_type = payment_type
            if draft.invoice_no:
                sale.invoice_no = draft.invoice_no
            if draft.description is not None:
                sale.description = draft.description
            self._write_totals(sale, draft, totals, received)
            sale.lines = self._line_models(result.lines)
            sale.party_balance_after = self.parties.balance_of(user_id, draft.party_name)
            self.session.flush()

            logger.info("sale_update_completed", extra={
                "invoice_no": sale.invoice_no,
                "grand_total": str(sale.grand_total),
                "balance": str(sale.balance),
                "items_changed": len(result.changed_items),
                "party_created": party_created,
                "paths": {r.item_name: r.path.value for r in result.items},
            })
            return sale

    # =========================================================================
    # Delete
    # =========================================================================

    def delete_sale(self, user_id: str, sale_id: UUID | str) -> None:
        """
        Remove a sale, putting every line's stock and cost layers back.

        Whatever receivable the sale posted to its party is taken back.
        """
        with LogContext.bind(user_id=user_id, sale_id=str(sale_id)):
            sale = self.get_sale(user_id, sale_id)

            for line in self.sale_lines(sale):
                item = self.inventory.get_item(user_id, line.item, for_update=True)
                if item is None:
                    logger.warning("sale_delete_item_not_found", extra={"item_name": line.item})
                    continue
                quantity = self.engine.base_quantity(line, self.inventory.snapshot(item))
                self.inventory.restore_stock(item, quantity, line.consumed_batches)

            credit = credit_amount(
                sale.payment_type, sale.grand_total, sale.received,
                self.settings.credit_payment_type,
            )
            if credit > 0:
                self.parties.adjust(user_id, sale.party_name, -credit)

            invoice_no = sale.invoice_no
            self.session.delete(sale)
            self.session.flush()

            logger.info("sale_deleted", extra={
                "invoice_no": invoice_no,
                "credit_reversed": str(max(credit, ZERO)),
            })

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate(self, draft: SaleDraft) -> None:
        if not draft.party_name or not draft.party_name.strip():
            raise InvalidSaleError("party name is required")
        if not draft.lines:
            raise InvalidSaleError("a sale needs at least one line")
        if draft.payment_type is not None and draft.payment_type not in self.settings.payment_types:
            raise InvalidSaleError(
                f"payment type {draft.payment_type!r} is not one of "
                f"{', '.join(self.settings.payment_types)}"
            )
        for line in draft.lines:
            if line.qty < 0:
                raise InvalidQuantityError(str(line.qty), f"negative quantity for {line.item}")

    def _ensure_invoice_free(self, user_id: str, invoice_no: str) -> None:
        taken = self.session.execute(
            select(SaleModel.id).where(
                SaleModel.user_id == user_id,
                SaleModel.invoice_no == invoice_no,
            )
        ).first()
        if taken is not None:
            raise DuplicateInvoiceError(invoice_no, user_id)

    @staticmethod
    def _write_totals(
        sale: SaleModel,
        draft: SaleDraft,
        totals: SaleTotals,
        received: Decimal,
    ) -> None:
        sale.discount = draft.discount or ZERO
        sale.discount_type = draft.discount_type
        sale.discount_value = totals.total_discount
        sale.tax = draft.tax or ZERO
        sale.tax_type = draft.tax_type
        sale.tax_value = totals.tax_value
        sale.grand_total = totals.grand_total
        sale.received = received
        sale.balance = totals.grand_total - received

    def _line_models(self, lines: Sequence[SaleLine]) -> list[SaleLineModel]:
        return [
            SaleLineModel(
                position=position,
                item_name=line.item,
                qty=line.qty,
                unit=line.unit or self.settings.default_line_unit,
                price=line.price,
                amount=line_amount(line),
                discount_percentage=line.discount_percentage,
                discount_amount=line.discount_amount,
                total_cost=line.total_cost,
                consumed_batches=[c.to_dict() for c in line.consumed_batches],
            )
            for position, line in enumerate(lines)
        ]


def _line_from_model(model: SaleLineModel) -> SaleLine:
    return SaleLine(
        item=model.item_name,
        qty=model.qty,
        unit=model.unit,
        price=model.price,
        amount=model.amount,
        consumed_batches=tuple(
            ConsumedBatch.from_dict(d) for d in (model.consumed_batches or [])
        ),
        total_cost=model.total_cost,
        discount_percentage=model.discount_percentage,
        discount_amount=model.discount_amount,
    )


def update_sale_with_retry(
    session_factory: sessionmaker[Session],
    user_id: str,
    sale_id: UUID | str,
    draft: SaleDraft,
    settings: InventorySettings | None = None,
    clock: Clock | None = None,
) -> SaleModel:
    """
    Run update_sale in its own transaction, retrying optimistic-lock losses.

    Each attempt opens a fresh session so the reconciliation runs against
    the winner's committed item state.  Gives up after
    ``settings.max_conflict_retries`` retries and re-raises.
    """
    settings = settings or InventorySettings()
    attempt = 0

    while True:
        attempt += 1
        try:
            with session_scope(session_factory) as session:
                return SaleService(session, settings, clock).update_sale(user_id, sale_id, draft)
        except OptimisticLockError as exc:
            if attempt > settings.max_conflict_retries:
                logger.error("sale_update_conflict_exhausted", extra={
                    "sale_id": str(sale_id),
                    "attempts": attempt,
                    "entity_id": exc.entity_id,
                })
                raise
            logger.warning("sale_update_conflict_retry", extra={
                "sale_id": str(sale_id),
                "attempt": attempt,
                "entity_id": exc.entity_id,
            })
