"""Tests for the risk / reward calculator."""

import pytest

from trade_journal.core.errors import InvalidPositionState
from trade_journal.journal.risk import (
    calculate,
    directional_pnl,
    distance_usd,
    rr_ratio,
)


class TestCalculate:
    def test_long_reference_case(self):
        rr = calculate(entry=100, size_usd=1000, balance=100_000, stop=95, take=110)
        assert rr.risk_usd == pytest.approx(50.0)
        assert rr.risk_percent == pytest.approx(0.05)
        assert rr.reward_usd == pytest.approx(100.0)
        assert rr.reward_percent == pytest.approx(0.1)
        assert rr.rr_ratio == pytest.approx(2.0)
        assert rr.rr_degenerate is False

    def test_short_uses_absolute_distance(self):
        rr = calculate(entry=100, size_usd=1000, balance=100_000, stop=105, take=90)
        assert rr.risk_usd == pytest.approx(50.0)
        assert rr.reward_usd == pytest.approx(100.0)

    def test_no_stop_means_no_risk(self):
        rr = calculate(entry=100, size_usd=1000, balance=100_000, take=110)
        assert rr.risk_usd is None
        assert rr.risk_percent is None
        assert rr.rr_ratio is None

    def test_no_take_means_no_reward(self):
        rr = calculate(entry=100, size_usd=1000, balance=100_000, stop=95)
        assert rr.reward_usd is None
        assert rr.rr_ratio is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"entry": 0},
            {"entry": -1},
            {"balance": 0},
            {"size_usd": -5},
            {"stop": 0},
            {"take": -10},
            {"entry": float("nan")},
        ],
    )
    def test_invalid_inputs(self, kwargs):
        base = dict(entry=100, size_usd=1000, balance=100_000, stop=95, take=110)
        base.update(kwargs)
        with pytest.raises(InvalidPositionState):
            calculate(**base)


class TestBreakevenRatio:
    def test_falls_back_to_basis(self):
        ratio, degenerate = rr_ratio(0.0, 100.0, basis_risk_usd=50.0)
        assert ratio == pytest.approx(2.0)
        assert degenerate is False

    def test_divides_by_one_without_basis(self):
        ratio, degenerate = rr_ratio(0.0, 100.0, basis_risk_usd=0.0)
        assert ratio == pytest.approx(100.0)
        assert degenerate is True

    def test_strict_returns_none(self):
        ratio, degenerate = rr_ratio(0.0, 100.0, basis_risk_usd=0.0, strict=True)
        assert ratio is None
        assert degenerate is True

    def test_calculate_stop_at_entry(self):
        rr = calculate(
            entry=100, size_usd=1000, balance=100_000, stop=100, take=110, basis_risk_usd=50
        )
        assert rr.risk_usd == 0
        assert rr.rr_ratio == pytest.approx(2.0)


class TestHelpers:
    def test_distance_none_without_level(self):
        assert distance_usd(100, None, 1000) is None

    def test_directional_pnl_long(self):
        assert directional_pnl(100, 110, 1000, "Long") == pytest.approx(100.0)

    def test_directional_pnl_short(self):
        assert directional_pnl(100, 110, 1000, "Short") == pytest.approx(-100.0)
