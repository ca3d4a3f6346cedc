"""Tests for the journal time sources."""

from datetime import datetime, timedelta, timezone

import pytest

from trade_journal.core.clock import SimClock, WallClock
from trade_journal.journal.ledger import PositionLedger


class TestWallClock:
    def test_aware_utc(self):
        now = WallClock().now()
        assert now.utcoffset() == timedelta(0)

    def test_tracks_host_time(self):
        before = datetime.now(timezone.utc)
        now = WallClock().now()
        assert before <= now <= before + timedelta(seconds=5)


class TestSimClock:
    def test_fixture_start(self, sim_clock):
        assert sim_clock.now() == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_default_start(self):
        assert SimClock().now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_non_utc_start_stored_as_utc(self):
        plus_two = timezone(timedelta(hours=2))
        clock = SimClock(datetime(2024, 3, 1, 9, 0, tzinfo=plus_two))
        assert clock.now() == datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
        assert clock.now().tzinfo is timezone.utc

    def test_naive_rejected(self):
        with pytest.raises(ValueError, match="naive"):
            SimClock(datetime(2024, 3, 1))

    def test_set_time_forward_and_same(self, sim_clock):
        sim_clock.set_time(sim_clock.now())
        target = datetime(2024, 6, 3, 15, 30, tzinfo=timezone.utc)
        sim_clock.set_time(target)
        assert sim_clock.now() == target

    def test_set_time_backwards_rejected(self, sim_clock):
        with pytest.raises(ValueError, match="backwards"):
            sim_clock.set_time(datetime(2024, 5, 31, tzinfo=timezone.utc))

    def test_advance_returns_new_instant(self, sim_clock):
        start = sim_clock.now()
        assert sim_clock.advance(hours=1, minutes=15) == start + timedelta(minutes=75)

    def test_negative_step_rejected(self, sim_clock):
        with pytest.raises(ValueError, match="negative"):
            sim_clock.advance(minutes=-1)


class TestLedgerStamping:
    def test_holding_time_follows_clock(self, sim_clock):
        ledger = PositionLedger(clock=sim_clock)
        pos = ledger.open(direction="Long", entry_price=100, size_usd=1_000, account_balance=10_000)
        sim_clock.advance(hours=4)
        closed = ledger.close(pos, price=102)
        assert closed.date_open == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert closed.date_close - closed.date_open == timedelta(hours=4)
