"""Shared helpers for journal tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from trade_journal.core.enums import CloseReason, Direction, PositionStatus
from trade_journal.journal.position import Position

_ids = itertools.count(1)


@pytest.fixture
def base_time():
    return datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def make_position(
    *,
    direction: str = "Long",
    entry: float = 100.0,
    size: float = 1000.0,
    stop: float | None = 95.0,
    take: float | None = 110.0,
    balance: float = 100_000.0,
    opened: datetime | None = None,
    symbol: str = "BTC",
    strategy: str = "breakout",
    timeframe: str = "1h",
    **extra,
) -> Position:
    """Open position built directly, bypassing the ledger."""
    risk = abs(entry - stop) / entry * size if stop else None
    fields = dict(
        id=extra.pop("id", f"p{next(_ids)}"),
        direction=Direction(direction),
        symbol=symbol,
        strategy=strategy,
        timeframe=timeframe,
        entry_price=entry,
        position_size_usd=size,
        stop_price=stop,
        take_price=take,
        original_entry_price=entry,
        original_stop_price=stop,
        initial_size_usd=size,
        risk_usd=risk,
        risk_percent=risk / balance * 100.0 if risk is not None else None,
        max_risk_usd=risk or 0.0,
        account_balance_at_entry=balance,
        date_open=opened or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
    )
    fields.update(extra)
    return Position(**fields)


def make_closed(
    pnl: float,
    closed: datetime,
    *,
    opened: datetime | None = None,
    close_price: float | None = None,
    reason: CloseReason = CloseReason.MANUAL,
    **kwargs,
) -> Position:
    """Closed position with a given PnL; R is measured against the 50 USD default risk."""
    opened = opened or closed - timedelta(hours=1)
    position = make_position(opened=opened, **kwargs)
    basis = position.max_risk_usd or 1.0
    return position.model_copy(
        update={
            "status": PositionStatus.CLOSED,
            "close_price": close_price or position.entry_price * (1 + pnl / position.position_size_usd),
            "close_reason": reason,
            "date_close": closed,
            "pnl_usd": pnl,
            "pnl_percent": pnl / position.account_balance_at_entry * 100.0,
            "r_multiple": pnl / basis,
            "duration_minutes": (closed - opened).total_seconds() / 60.0,
        }
    )


def closed_series(pnls: list[float], start: datetime | None = None, step_hours: float = 1.0) -> list[Position]:
    """Closed positions with *pnls*, closing one every *step_hours*."""
    start = start or datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    return [
        make_closed(pnl, start + timedelta(hours=step_hours * i))
        for i, pnl in enumerate(pnls)
    ]
