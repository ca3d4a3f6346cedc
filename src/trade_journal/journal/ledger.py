"""Position ledger: the lifecycle state machine for one position.

States are ``OPEN`` and ``CLOSED`` (terminal).  Every event takes a
:class:`Position` snapshot and returns a *new* snapshot; the input is
never touched, so a rejected event leaves the caller's copy exactly as
it was.  Each accepted event appends one line to ``action_history``.

Events
------
open            first fill; fixes ``original_entry_price`` / ``original_stop_price``
add             averaging add, weighted by USD notional
partial_close   scale out a percentage; reaching zero size closes
adjust_stop     move the stop (``move_stop_to_breakeven`` = stop to entry)
adjust_take     move the take-profit
close           final close (manual / hit_stop / hit_take)
mark            close automatically when a mark price crosses stop or take

R-multiple
----------
R is measured against the *risk basis*: the worst risk the trader
actually held (``max_risk_usd``), not the live risk at close, which is
0 after a stop-to-breakeven move.  Without a max risk the basis is the
stop distance at the original entry / stop, and as a last resort 1
(flagged ``r_multiple_degenerate``).

The ledger holds no state of its own beyond its clock and config.
Callers serialize events per position id.

Usage::

    ledger = PositionLedger(clock=WallClock())
    pos = ledger.open(direction="Long", entry_price=100, size_usd=1000,
                      account_balance=100_000, stop_price=95, take_price=110)
    pos = ledger.add(pos, price=110, size_usd=1000)      # entry -> 105
    pos = ledger.move_stop_to_breakeven(pos)             # risk -> 0
    pos = ledger.close(pos, price=115)
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any

from trade_journal.core.clock import IClock, WallClock
from trade_journal.core.config import LedgerConfig
from trade_journal.core.enums import (
    ActionKind,
    CloseReason,
    Direction,
    PositionStatus,
)
from trade_journal.core.errors import InvalidPositionState, InvalidTransition

from . import risk as rr
from .position import ActionEntry, AddLeg, PartialCloseLeg, Position
from .temporal import TimestampLike, parse_timestamp

logger = logging.getLogger(__name__)

# Reasons an explicit close may carry; FULLY_SCALED_OUT only comes from partial_close
_CLOSE_ACTIONS = {
    CloseReason.MANUAL: ActionKind.CLOSE,
    CloseReason.HIT_STOP: ActionKind.HIT_STOP,
    CloseReason.HIT_TAKE: ActionKind.HIT_TAKE,
}


# ---------------------------------------------------------------------- #
# Formatting helpers for history lines                                    #
# ---------------------------------------------------------------------- #

def _fmt_price(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:,.8g}"


def _fmt_usd(value: float, signed: bool = False) -> str:
    sign = ""
    if signed:
        sign = "+" if value >= 0 else "-"
    elif value < 0:
        sign = "-"
    return f"{sign}${abs(value):,.2f}"


# ---------------------------------------------------------------------- #
# Risk basis                                                              #
# ---------------------------------------------------------------------- #

def risk_basis(position: Position) -> tuple[float, bool]:
    """R-multiple denominator for *position*.

    Returns ``(basis, degenerate)``; ``degenerate`` is True when the
    1-unit guard was used.
    """
    if position.max_risk_usd > 0:
        return position.max_risk_usd, False

    entry = position.original_entry_price
    stop = position.original_stop_price
    size = position.initial_size_usd or position.position_size_usd
    if entry and stop and size:
        original = rr.distance_usd(entry, stop, size)
        if original:
            return original, False

    return 1.0, True


def _close_reason(value: Any) -> CloseReason:
    try:
        reason = CloseReason(value)
    except ValueError as exc:
        raise InvalidPositionState(f"unknown close reason {value!r}") from exc
    if reason not in _CLOSE_ACTIONS:
        raise InvalidPositionState(f"close reason {reason.value!r} is set by partial_close only")
    return reason


def _require_positive(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPositionState(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number) or number <= 0:
        raise InvalidPositionState(f"{name} must be positive, got {value!r}")
    return number


class PositionLedger:
    """Apply lifecycle events to position snapshots.

    Parameters
    ----------
    clock : IClock
        Source of "now" for events without an explicit ``at``.
    config : LedgerConfig
        ``strict_breakeven_rr`` switches the degenerate breakeven R:R
        from ``reward / 1`` to ``None``.
    size_epsilon : float
        Remaining notional at or below this is treated as fully closed.
    """

    def __init__(
        self,
        *,
        clock: IClock | None = None,
        config: LedgerConfig | None = None,
        size_epsilon: float = 1e-8,
    ) -> None:
        self._clock = clock or WallClock()
        self._config = config or LedgerConfig()
        self._eps = size_epsilon

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _now(self, at: TimestampLike | None) -> datetime:
        return parse_timestamp(at) if at is not None else self._clock.now()

    @staticmethod
    def _ensure_open(position: Position, event: str) -> None:
        if position.status == PositionStatus.CLOSED:
            raise InvalidTransition(position.id, event)

    def _risk_fields(
        self,
        *,
        entry: float,
        size_usd: float,
        balance: float,
        stop: float | None,
        take: float | None,
        max_risk: float,
    ) -> dict[str, Any]:
        """Recompute risk / reward and the max-risk high-water mark."""
        live_risk = rr.distance_usd(entry, stop, size_usd)
        new_max = max(max_risk, live_risk or 0.0)
        result = rr.calculate(
            entry=entry,
            size_usd=size_usd,
            balance=balance,
            stop=stop,
            take=take,
            basis_risk_usd=new_max,
            strict=self._config.strict_breakeven_rr,
        )
        return {
            "risk_usd": result.risk_usd,
            "risk_percent": result.risk_percent,
            "reward_usd": result.reward_usd,
            "reward_percent": result.reward_percent,
            "rr_ratio": result.rr_ratio,
            "rr_degenerate": result.rr_degenerate,
            "max_risk_usd": new_max,
        }

    @staticmethod
    def _history(
        position: Position,
        kind: ActionKind,
        description: str,
        at: datetime,
    ) -> tuple[ActionEntry, ...]:
        entry = ActionEntry(timestamp=at, action_kind=kind, description=description)
        return (*position.action_history, entry)

    def _closing_fields(
        self,
        position: Position,
        *,
        pnl_usd: float,
        close_price: float,
        reason: CloseReason,
        at: datetime,
    ) -> dict[str, Any]:
        if at < position.date_open:
            raise InvalidPositionState(
                f"close time {at.isoformat()} precedes open time "
                f"{position.date_open.isoformat()}"
            )
        basis, degenerate = risk_basis(position)
        if degenerate:
            logger.warning(
                "Position %s closed without any risk basis; R-multiple uses 1 as denominator",
                position.id,
            )
        return {
            "status": PositionStatus.CLOSED,
            "close_price": close_price,
            "close_reason": reason,
            "date_close": at,
            "pnl_usd": pnl_usd,
            "pnl_percent": pnl_usd / position.account_balance_at_entry * 100.0,
            "r_multiple": pnl_usd / basis,
            "r_multiple_degenerate": degenerate,
            "duration_minutes": (at - position.date_open).total_seconds() / 60.0,
        }

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    def open(
        self,
        *,
        direction: Direction | str,
        entry_price: float,
        size_usd: float,
        account_balance: float,
        stop_price: float | None = None,
        take_price: float | None = None,
        symbol: str = "",
        strategy: str = "",
        timeframe: str = "",
        position_id: str | None = None,
        at: TimestampLike | None = None,
    ) -> Position:
        """Create a position from its first fill."""
        direction = Direction(direction)
        entry = _require_positive("entry_price", entry_price)
        size = _require_positive("size_usd", size_usd)
        balance = _require_positive("account_balance", account_balance)
        stop = _require_positive("stop_price", stop_price) if stop_price is not None else None
        take = _require_positive("take_price", take_price) if take_price is not None else None
        ts = self._now(at)

        fields = self._risk_fields(
            entry=entry, size_usd=size, balance=balance,
            stop=stop, take=take, max_risk=0.0,
        )
        description = (
            f"Opened {direction.value} {_fmt_usd(size)} at {_fmt_price(entry)} "
            f"(stop {_fmt_price(stop)}, take {_fmt_price(take)})"
        )
        position = Position(
            id=position_id or str(uuid.uuid4()),
            direction=direction,
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
            account_balance_at_entry=balance,
            date_open=ts,
            action_history=(
                ActionEntry(timestamp=ts, action_kind=ActionKind.OPEN, description=description),
            ),
            **fields,
        )
        logger.debug("Opened position %s: %s", position.id, description)
        return position

    def add(
        self,
        position: Position,
        price: float,
        size_usd: float,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Average into the position.

        ``new_entry = (old_entry*old_size + price*size) / (old_size+size)``;
        the stop and take stay where they are.
        """
        self._ensure_open(position, "add")
        price = _require_positive("price", price)
        size_usd = _require_positive("size_usd", size_usd)
        ts = self._now(at)

        old_size = position.position_size_usd
        new_size = old_size + size_usd
        new_entry = (position.entry_price * old_size + price * size_usd) / new_size

        update = self._risk_fields(
            entry=new_entry, size_usd=new_size,
            balance=position.account_balance_at_entry,
            stop=position.stop_price, take=position.take_price,
            max_risk=position.max_risk_usd,
        )
        # Legacy snapshots may predate the originals; the pre-add fill is the first one
        if position.original_entry_price is None:
            update["original_entry_price"] = position.entry_price
            update["original_stop_price"] = position.stop_price
            update["initial_size_usd"] = old_size or size_usd

        description = (
            f"Added {_fmt_usd(size_usd)} at {_fmt_price(price)}: "
            f"avg entry {_fmt_price(position.entry_price)} -> {_fmt_price(new_entry)}, "
            f"size {_fmt_usd(new_size)}"
        )
        update.update(
            entry_price=new_entry,
            position_size_usd=new_size,
            adds=(*position.adds, AddLeg(price=price, size_usd=size_usd, timestamp=ts)),
            action_history=self._history(position, ActionKind.ADD, description, ts),
        )
        logger.debug("Position %s: %s", position.id, description)
        return position.model_copy(update=update)

    def partial_close(
        self,
        position: Position,
        percent: float,
        price: float,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Scale out *percent* (0, 100] of the current size at *price*.

        Closing the remainder transitions to CLOSED with
        ``pnl_usd = realized_pnl_usd``.
        """
        self._ensure_open(position, "partial_close")
        percent = _require_positive("percent", percent)
        if percent > 100:
            raise InvalidPositionState(f"percent must be in (0, 100], got {percent!r}")
        price = _require_positive("price", price)
        ts = self._now(at)

        closed_size = position.position_size_usd * percent / 100.0
        partial_pnl = rr.directional_pnl(
            position.entry_price, price, closed_size, position.direction
        )
        realized = position.realized_pnl_usd + partial_pnl
        remaining = position.position_size_usd - closed_size
        if remaining <= self._eps:
            remaining = 0.0

        leg = PartialCloseLeg(
            percent=percent, price=price, size_usd=closed_size,
            pnl_usd=partial_pnl, timestamp=ts,
        )
        description = (
            f"Closed {percent:g}% ({_fmt_usd(closed_size)}) at {_fmt_price(price)}: "
            f"{_fmt_usd(partial_pnl, signed=True)}"
        )
        update: dict[str, Any] = {
            "realized_pnl_usd": realized,
            "position_size_usd": remaining,
            "partial_closes": (*position.partial_closes, leg),
            "action_history": self._history(
                position, ActionKind.PARTIAL_CLOSE, description, ts
            ),
        }

        if remaining == 0.0:
            # Risk fields keep their last live values as the record of exposure at exit
            update.update(
                self._closing_fields(
                    position,
                    pnl_usd=realized,
                    close_price=price,
                    reason=CloseReason.FULLY_SCALED_OUT,
                    at=ts,
                )
            )
            logger.debug(
                "Position %s fully scaled out, pnl %.2f", position.id, realized
            )
        else:
            update.update(
                self._risk_fields(
                    entry=position.entry_price, size_usd=remaining,
                    balance=position.account_balance_at_entry,
                    stop=position.stop_price, take=position.take_price,
                    max_risk=position.max_risk_usd,
                )
            )
            logger.debug("Position %s: %s", position.id, description)
        return position.model_copy(update=update)

    def adjust_stop(
        self,
        position: Position,
        new_stop: float,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Move the stop.  ``original_stop_price`` is left alone."""
        self._ensure_open(position, "adjust_stop")
        new_stop = _require_positive("new_stop", new_stop)
        ts = self._now(at)

        at_entry = new_stop == position.entry_price
        kind = ActionKind.MOVE_TO_BREAKEVEN if at_entry else ActionKind.STOP_ADJUST
        description = (
            f"Stop moved {_fmt_price(position.stop_price)} -> {_fmt_price(new_stop)}"
            + (" (breakeven)" if at_entry else "")
        )
        update = self._risk_fields(
            entry=position.entry_price, size_usd=position.position_size_usd,
            balance=position.account_balance_at_entry,
            stop=new_stop, take=position.take_price,
            max_risk=position.max_risk_usd,
        )
        update.update(
            stop_price=new_stop,
            action_history=self._history(position, kind, description, ts),
        )
        logger.debug("Position %s: %s", position.id, description)
        return position.model_copy(update=update)

    def move_stop_to_breakeven(
        self,
        position: Position,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Stop to entry: risk becomes exactly 0, max risk is untouched."""
        return self.adjust_stop(position, position.entry_price, at=at)

    def adjust_take(
        self,
        position: Position,
        new_take: float,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        self._ensure_open(position, "adjust_take")
        new_take = _require_positive("new_take", new_take)
        ts = self._now(at)

        description = (
            f"Take moved {_fmt_price(position.take_price)} -> {_fmt_price(new_take)}"
        )
        update = self._risk_fields(
            entry=position.entry_price, size_usd=position.position_size_usd,
            balance=position.account_balance_at_entry,
            stop=position.stop_price, take=new_take,
            max_risk=position.max_risk_usd,
        )
        update.update(
            take_price=new_take,
            action_history=self._history(position, ActionKind.TAKE_ADJUST, description, ts),
        )
        logger.debug("Position %s: %s", position.id, description)
        return position.model_copy(update=update)

    def close(
        self,
        position: Position,
        price: float,
        reason: CloseReason | str = CloseReason.MANUAL,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Close the remaining size at *price*.

        ``pnl_usd = realized_pnl_usd + directional_pnl(entry, price, size)``.
        """
        self._ensure_open(position, "close")
        price = _require_positive("price", price)
        reason = _close_reason(reason)
        ts = self._now(at)

        final_pnl = rr.directional_pnl(
            position.entry_price, price, position.position_size_usd, position.direction
        )
        total = position.realized_pnl_usd + final_pnl
        update = self._closing_fields(
            position, pnl_usd=total, close_price=price, reason=reason, at=ts
        )
        description = (
            f"Closed at {_fmt_price(price)} ({reason.value}): "
            f"PnL {_fmt_usd(total, signed=True)}, R {update['r_multiple']:+.2f}"
        )
        update["action_history"] = self._history(
            position, _CLOSE_ACTIONS[reason], description, ts
        )
        logger.debug("Position %s: %s", position.id, description)
        return position.model_copy(update=update)

    def hit_stop(self, position: Position, *, at: TimestampLike | None = None) -> Position:
        """Close at the current stop price."""
        self._ensure_open(position, "hit_stop")
        if position.stop_price is None:
            raise InvalidPositionState(f"position {position.id} has no stop")
        return self.close(position, position.stop_price, CloseReason.HIT_STOP, at=at)

    def hit_take(self, position: Position, *, at: TimestampLike | None = None) -> Position:
        """Close at the current take price."""
        self._ensure_open(position, "hit_take")
        if position.take_price is None:
            raise InvalidPositionState(f"position {position.id} has no take")
        return self.close(position, position.take_price, CloseReason.HIT_TAKE, at=at)

    def mark(
        self,
        position: Position,
        price: float,
        *,
        at: TimestampLike | None = None,
    ) -> Position:
        """Apply a mark price; close if it crosses the stop or take.

        The stop is checked first, so a gap through both levels is
        booked as a stop-out.  Returns the same snapshot when nothing
        triggers.
        """
        self._ensure_open(position, "mark")
        price = _require_positive("price", price)
        sign = position.direction.sign

        stop = position.stop_price
        if stop is not None and sign * (price - stop) <= 0:
            return self.hit_stop(position, at=at)
        take = position.take_price
        if take is not None and sign * (price - take) >= 0:
            return self.hit_take(position, at=at)
        return position
