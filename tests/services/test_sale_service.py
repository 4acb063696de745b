"""
Tests for SaleService - sale create, edit and delete over FIFO inventory.

Every edit scenario starts from a sale created through the service, so the
stored lines carry the consumed batches the create path recorded.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_config.schema import InventorySettings
from inventory_engines import SaleLine
from inventory_engines.valuation import ConsumedBatch
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.exceptions import (
    DuplicateInvoiceError,
    InvalidQuantityError,
    InvalidSaleError,
    OptimisticLockError,
    SaleNotFoundError,
)
from inventory_services.inventory_service import InventoryService
from inventory_services.party_ledger import PartyLedger
from inventory_services.sale_service import SaleDraft, SaleService, update_sale_with_retry
from tests.conftest import USER_ID


def _line(item, qty, price="10", unit="Piece"):
    return SaleLine(item=item, qty=Decimal(qty), unit=unit, price=Decimal(price))


def _draft(party, *lines, **kwargs):
    return SaleDraft(party_name=party, lines=tuple(lines), **kwargs)


def _layers(item):
    return [(b.quantity, b.purchase_price) for b in sorted(item.batches, key=lambda b: b.sequence)]


def _consumed(line_model):
    return [ConsumedBatch.from_dict(d) for d in line_model.consumed_batches]


@pytest.fixture
def widget(make_item):
    return make_item("Widget", batches=[("10", "5"), ("10", "6")])


# =============================================================================
# Create
# =============================================================================


class TestCreateSale:

    def test_create_consumes_fifo_and_records_cost(self, sale_service, widget):
        sale = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "12")))

        line = sale.lines[0]
        assert _consumed(line) == [
            ConsumedBatch(Decimal("10"), Decimal("5")),
            ConsumedBatch(Decimal("2"), Decimal("6")),
        ]
        assert line.total_cost == Decimal("62")
        assert widget.stock == Decimal("8")
        assert _layers(widget) == [(Decimal("8"), Decimal("6"))]

    def test_create_auto_creates_party_and_posts_credit(self, sale_service, party_ledger, widget):
        sale = sale_service.create_sale(
            USER_ID, _draft("Asha", _line("Widget", "5"), received=Decimal("20")),
        )

        party = party_ledger.get(USER_ID, "Asha")
        assert party is not None
        assert party.note == "Auto-created from sale"
        assert sale.payment_type == "Credit"
        assert sale.grand_total == Decimal("50")
        assert sale.balance == Decimal("30")
        assert party.balance == Decimal("30")
        assert sale.party_balance_after == Decimal("30")

    def test_paid_cash_sale_leaves_party_balance(self, sale_service, party_ledger, widget):
        sale = sale_service.create_sale(USER_ID, _draft(
            "Asha", _line("Widget", "5"), payment_type="Cash", received=Decimal("50"),
        ))

        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")
        assert sale.party_balance_after == Decimal("0")

    def test_part_paid_cash_sale_posts_unpaid_remainder(self, sale_service, party_ledger, widget):
        sale = sale_service.create_sale(USER_ID, _draft(
            "Asha", _line("Widget", "5"), payment_type="Cash", received=Decimal("20"),
        ))

        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("30")
        assert sale.party_balance_after == Decimal("30")

    def test_overpaid_cash_sale_does_not_credit_party(self, sale_service, party_ledger, widget):
        sale_service.create_sale(USER_ID, _draft(
            "Asha", _line("Widget", "5"), payment_type="Cash", received=Decimal("60"),
        ))

        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")

    def test_invoice_numbers_increment(self, sale_service, widget):
        first = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1")))
        second = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1")))

        assert first.invoice_no == "INV001"
        assert second.invoice_no == "INV002"

    def test_duplicate_invoice_rejected(self, sale_service, widget):
        sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1"), invoice_no="A-1"))
        with pytest.raises(DuplicateInvoiceError):
            sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1"), invoice_no="A-1"))

    def test_totals_with_discount_and_tax(self, sale_service, widget):
        sale = sale_service.create_sale(USER_ID, _draft(
            "Asha", _line("Widget", "10"),
            discount=Decimal("10"), tax=Decimal("5"),
        ))

        assert sale.discount_value == Decimal("10")
        assert sale.tax_value == Decimal("4.5")
        assert sale.grand_total == Decimal("94.5")

    def test_shortfall_falls_back_to_available_stock(
        self, sale_service, make_item, captured_logs,
    ):
        item = make_item("Widget", batches=[("3", "5")])

        sale = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "5")))

        assert item.stock == Decimal("0")
        assert _consumed(sale.lines[0]) == [ConsumedBatch(Decimal("3"), Decimal("5"))]
        assert sale.lines[0].total_cost == Decimal("15")
        assert any(
            r["message"] == "sale_line_fallback_consumption" for r in captured_logs()
        )

    def test_unknown_item_recorded_without_cost(self, sale_service):
        sale = sale_service.create_sale(USER_ID, _draft("Asha", _line("Ghost", "2")))

        assert sale.lines[0].total_cost == Decimal("0")
        assert sale.lines[0].consumed_batches == []
        assert sale.grand_total == Decimal("20")

    def test_secondary_unit_line_converted(self, sale_service, make_item):
        item = make_item(
            "Soap",
            batches=[("36", "2")],
            unit={"base": "Piece", "secondary": "Box", "conversionFactor": 12},
        )

        sale_service.create_sale(USER_ID, _draft("Asha", _line("Soap", "2", unit="Box")))

        assert item.stock == Decimal("12")


class TestDraftValidation:

    def test_missing_party_rejected(self, sale_service):
        with pytest.raises(InvalidSaleError):
            sale_service.create_sale(USER_ID, _draft("  ", _line("Widget", "1")))

    def test_no_lines_rejected(self, sale_service):
        with pytest.raises(InvalidSaleError) as exc_info:
            sale_service.create_sale(USER_ID, _draft("Asha"))
        assert exc_info.value.code == "INVALID_SALE"

    def test_unknown_payment_type_rejected(self, sale_service):
        with pytest.raises(InvalidSaleError):
            sale_service.create_sale(
                USER_ID, _draft("Asha", _line("Widget", "1"), payment_type="Barter"),
            )

    def test_negative_quantity_rejected(self, sale_service):
        with pytest.raises(InvalidQuantityError):
            sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "-1")))


# =============================================================================
# Update
# =============================================================================


class TestUpdateSale:

    @pytest.fixture
    def sale(self, sale_service, widget):
        # Widget after this: stock 15, batches [5@5, 10@6]; Asha owes 50
        return sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "5")))

    def test_increase_restores_then_consumes_delta(self, sale_service, sale, widget):
        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "8")))

        assert widget.stock == Decimal("17")
        assert _layers(widget) == [(Decimal("7"), Decimal("5")), (Decimal("10"), Decimal("6"))]
        line = updated.lines[0]
        assert _consumed(line) == [
            ConsumedBatch(Decimal("5"), Decimal("5")),
            ConsumedBatch(Decimal("3"), Decimal("5")),
        ]
        assert line.total_cost == Decimal("40")

    def test_decrease_scales_cost_and_keeps_inventory(self, sale_service, sale, widget):
        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "2")))

        assert widget.stock == Decimal("15")
        assert _layers(widget) == [(Decimal("5"), Decimal("5")), (Decimal("10"), Decimal("6"))]
        assert _consumed(updated.lines[0]) == [ConsumedBatch(Decimal("2"), Decimal("5"))]
        assert updated.lines[0].total_cost == Decimal("10")

    def test_unchanged_quantity_touches_nothing(self, sale_service, sale, widget):
        version = widget.version

        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "5")))

        assert widget.version == version
        assert updated.lines[0].total_cost == Decimal("25")

    def test_removed_line_restores_stock(self, sale_service, sale, widget, make_item):
        gadget = make_item("Gadget", batches=[("4", "3")])

        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Gadget", "2")))

        assert widget.stock == Decimal("20")
        assert _layers(widget) == [(Decimal("10"), Decimal("5")), (Decimal("10"), Decimal("6"))]
        assert gadget.stock == Decimal("2")
        assert [line.item_name for line in updated.lines] == ["Gadget"]
        assert updated.lines[0].total_cost == Decimal("6")

    def test_credit_difference_posted_to_party(self, sale_service, party_ledger, sale):
        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "8")))

        assert updated.grand_total == Decimal("80")
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("80")
        assert updated.party_balance_after == Decimal("80")

    def test_received_kept_when_not_given(self, sale_service, party_ledger, widget):
        sale = sale_service.create_sale(
            USER_ID, _draft("Asha", _line("Widget", "5"), received=Decimal("20")),
        )

        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "6")))

        assert updated.received == Decimal("20")
        assert updated.balance == Decimal("40")
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("40")

    def test_switch_to_paid_cash_clears_credit(self, sale_service, party_ledger, sale):
        sale_service.update_sale(USER_ID, sale.id, _draft(
            "Asha", _line("Widget", "5"), payment_type="Cash", received=Decimal("50"),
        ))
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")

    def test_switch_to_unpaid_cash_keeps_remainder(self, sale_service, party_ledger, sale):
        sale_service.update_sale(USER_ID, sale.id, _draft(
            "Asha", _line("Widget", "5"), payment_type="Cash", received=Decimal("15"),
        ))
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("35")

    def test_party_switch_moves_credit(self, sale_service, party_ledger, sale):
        party_ledger.get_or_create(USER_ID, "Ben")

        sale_service.update_sale(USER_ID, sale.id, _draft("Ben", _line("Widget", "5")))

        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")
        assert party_ledger.balance_of(USER_ID, "Ben") == Decimal("50")

    def test_switch_to_unknown_party_creates_it(self, sale_service, party_ledger, sale):
        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Newcomer", _line("Widget", "5")))

        newcomer = party_ledger.get(USER_ID, "Newcomer")
        assert newcomer is not None
        assert newcomer.note == "Auto-created from sale update"
        assert newcomer.balance == Decimal("50")
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")
        assert updated.party_balance_after == Decimal("50")

    def test_line_for_deleted_item_does_not_fail(self, sale_service, widget):
        sale = sale_service.create_sale(USER_ID, _draft("Asha", _line("Ghost", "2")))

        updated = sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Ghost", "4")))

        assert updated.lines[0].qty == Decimal("4")
        assert updated.lines[0].total_cost == Decimal("0")

    def test_update_logs_paths(self, sale_service, sale, captured_logs):
        sale_service.update_sale(USER_ID, sale.id, _draft("Asha", _line("Widget", "8")))

        completed = [r for r in captured_logs() if r["message"] == "sale_update_completed"]
        assert completed
        assert completed[0]["paths"] == {"Widget": "consumed"}

    def test_unknown_sale_raises(self, sale_service):
        with pytest.raises(SaleNotFoundError):
            sale_service.update_sale(USER_ID, uuid4(), _draft("Asha", _line("Widget", "1")))

    def test_malformed_sale_id_raises_not_found(self, sale_service):
        with pytest.raises(SaleNotFoundError):
            sale_service.get_sale(USER_ID, "not-a-uuid")

    def test_invoice_change_to_taken_number_rejected(self, sale_service, widget):
        sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1")))
        second = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "1")))

        with pytest.raises(DuplicateInvoiceError):
            sale_service.update_sale(
                USER_ID, second.id, _draft("Asha", _line("Widget", "1"), invoice_no="INV001"),
            )


# =============================================================================
# Delete
# =============================================================================


class TestDeleteSale:

    def test_delete_restores_stock_and_credit(self, sale_service, party_ledger, widget):
        sale = sale_service.create_sale(USER_ID, _draft("Asha", _line("Widget", "12")))

        sale_service.delete_sale(USER_ID, sale.id)

        assert widget.stock == Decimal("20")
        assert _layers(widget) == [(Decimal("10"), Decimal("5")), (Decimal("10"), Decimal("6"))]
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("0")
        with pytest.raises(SaleNotFoundError):
            sale_service.get_sale(USER_ID, sale.id)

    def test_delete_part_paid_cash_sale_takes_back_remainder(self, sale_service, party_ledger, widget):
        party_ledger.get_or_create(USER_ID, "Asha")
        party_ledger.adjust(USER_ID, "Asha", Decimal("7"))
        sale = sale_service.create_sale(USER_ID, _draft(
            "Asha", _line("Widget", "2"), payment_type="Cash", received=Decimal("5"),
        ))
        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("22")

        sale_service.delete_sale(USER_ID, sale.id)

        assert party_ledger.balance_of(USER_ID, "Asha") == Decimal("7")


# =============================================================================
# Conflict retry
# =============================================================================


class TestUpdateWithRetry:

    @pytest.fixture
    def committed_sale_id(self, session_factory):
        clock = DeterministicClock()
        with session_scope(session_factory) as session:
            inventory = InventoryService(session, clock)
            inventory.create_item(USER_ID, "Widget")
            inventory.receive_stock(USER_ID, "Widget", Decimal("10"), Decimal("5"))
            inventory.receive_stock(USER_ID, "Widget", Decimal("10"), Decimal("6"))
            sale = SaleService(session, clock=clock).create_sale(
                USER_ID, _draft("Asha", _line("Widget", "5")),
            )
            return sale.id

    @staticmethod
    def _fail_apply(monkeypatch, failures):
        calls = {"count": 0}
        original = InventoryService.apply

        def flaky_apply(self, item, stock):
            calls["count"] += 1
            if calls["count"] <= failures:
                raise OptimisticLockError("InventoryItem", str(item.id))
            return original(self, item, stock)

        monkeypatch.setattr(InventoryService, "apply", flaky_apply)
        return calls

    def test_retries_after_conflict(
        self, session_factory, committed_sale_id, monkeypatch, captured_logs,
    ):
        calls = self._fail_apply(monkeypatch, failures=1)

        update_sale_with_retry(
            session_factory, USER_ID, committed_sale_id,
            _draft("Asha", _line("Widget", "8")),
        )

        assert calls["count"] == 2
        with session_scope(session_factory) as session:
            item = InventoryService(session).require_item(USER_ID, "Widget")
            assert item.stock == Decimal("17")
            assert PartyLedger(session).balance_of(USER_ID, "Asha") == Decimal("80")
        assert any(r["message"] == "sale_update_conflict_retry" for r in captured_logs())

    def test_gives_up_after_max_retries(self, session_factory, committed_sale_id, monkeypatch):
        calls = self._fail_apply(monkeypatch, failures=100)
        settings = InventorySettings(max_conflict_retries=2)

        with pytest.raises(OptimisticLockError):
            update_sale_with_retry(
                session_factory, USER_ID, committed_sale_id,
                _draft("Asha", _line("Widget", "8")), settings=settings,
            )

        assert calls["count"] == 3
        with session_scope(session_factory) as session:
            item = InventoryService(session).require_item(USER_ID, "Widget")
            assert item.stock == Decimal("15")
