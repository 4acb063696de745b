"""
Pytest fixtures for the inventory ledger test suite.

Provides:
- A fresh in-memory SQLite database per test
- Services wired to a deterministic clock
- Item seeding helpers
- Structured log capture
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from inventory_config.schema import InventorySettings
from inventory_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_services.inventory_service import InventoryService
from inventory_services.party_ledger import PartyLedger
from inventory_services.sale_service import SaleService

USER_ID = "user-1"


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sale_service):
            sale_service.update_sale(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_update_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables, torn down after the test."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def settings() -> InventorySettings:
    return InventorySettings()


@pytest.fixture
def inventory(session, deterministic_clock) -> InventoryService:
    return InventoryService(session, deterministic_clock)


@pytest.fixture
def party_ledger(session) -> PartyLedger:
    return PartyLedger(session)


@pytest.fixture
def sale_service(session, settings, deterministic_clock) -> SaleService:
    return SaleService(session, settings, deterministic_clock)


@pytest.fixture
def make_item(session, inventory, deterministic_clock):
    """
    Create an item and receive its batches in order.

    ``batches`` is a list of ``(quantity, purchase_price)`` pairs.
    ``extra_stock`` adds stock with no cost layer behind it (legacy data).
    """

    def _make(
        name: str,
        batches=(),
        unit=None,
        purchase_price="0",
        extra_stock="0",
        user_id: str = USER_ID,
    ):
        item = inventory.create_item(
            user_id, name, unit=unit, purchase_price=Decimal(purchase_price),
        )
        for qty, price in batches:
            deterministic_clock.advance(60)
            inventory.receive_stock(user_id, name, Decimal(qty), Decimal(price))
        if Decimal(extra_stock):
            item.stock = item.stock + Decimal(extra_stock)
            session.flush()
        return item

    return _make
