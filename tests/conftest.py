"""Shared fixtures for the trade-journal test suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trade_journal.core.clock import SimClock
from trade_journal.core.config import LedgerConfig
from trade_journal.journal.ledger import PositionLedger


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Return a SimClock starting at 2024-06-01 00:00 UTC."""
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

@pytest.fixture
def ledger(sim_clock) -> PositionLedger:
    return PositionLedger(clock=sim_clock, config=LedgerConfig())


@pytest.fixture
def strict_ledger(sim_clock) -> PositionLedger:
    return PositionLedger(clock=sim_clock, config=LedgerConfig(strict_breakeven_rr=True))
