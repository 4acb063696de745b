"""Tests for transactional session scope and the clock."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import DeterministicClock, SystemClock
from inventory_kernel.models import PartyModel


def _party_count(session_factory):
    with session_scope(session_factory) as session:
        return session.execute(select(func.count()).select_from(PartyModel)).scalar_one()


class TestSessionScope:

    def test_commits_on_success(self, session_factory):
        with session_scope(session_factory) as session:
            session.add(PartyModel(user_id="u", name="Asha", balance=Decimal("0")))

        assert _party_count(session_factory) == 1

    def test_rolls_back_and_reraises(self, session_factory):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.add(PartyModel(user_id="u", name="Asha", balance=Decimal("0")))
                session.flush()
                raise RuntimeError("boom")

        assert _party_count(session_factory) == 0


class TestClock:

    def test_deterministic_clock_advances(self):
        clock = DeterministicClock()
        start = clock.now()

        clock.advance(90)

        assert clock.now() - start == timedelta(seconds=90)

    def test_set_time(self):
        clock = DeterministicClock()
        when = datetime(2025, 5, 1, tzinfo=timezone.utc)
        clock.set_time(when)
        assert clock.now() == when

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is not None
