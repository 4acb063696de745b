"""
Clock -- Injectable time source.

Responsibility:
    Services that stamp rows (batch receipts, restored layers) take a Clock
    in their constructor instead of calling ``datetime.now()``.

Architecture position:
    Kernel > Domain.  Engines never read the time at all; SystemClock is
    the only place the wall clock is touched.

Invariants enforced:
    - Every returned datetime is timezone-aware UTC.
    - A DeterministicClock only moves through set_time() or advance(), so
      FIFO receipt order in tests is exactly the order of the calls.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """
    Source of timezone-aware UTC datetimes.

    Contract:
        InventoryService receives one through its constructor and uses it
        for every batch ``created_at`` it stamps.

    Guarantees:
        ``now()`` returns an aware ``datetime`` in UTC.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time.  The production default."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Contract:
        Tests advance it between receipts so FIFO layers get distinct,
        ordered ``created_at`` stamps.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - Starts at ``DEFAULT_TEST_TIME`` unless given ``fixed_time``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Jump to ``time``; later advances count from there."""
        self._current = time

    def advance(self, seconds: float = 1) -> None:
        """Move forward by ``seconds`` (default one second)."""
        self._current += timedelta(seconds=seconds)
