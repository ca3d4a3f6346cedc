"""Portfolio analytics over a collection of positions.

Read-only reductions: filtering, win / loss classification, win rate,
profit factor, expectancy, equity curve and drawdown, streaks, the
R-multiple histogram, exit-type breakdown, open-risk exposure and the
per-day PnL calendar.

Nothing here mutates its inputs, so one position list may be analysed
from several threads at once.  Ratios whose denominator is absent come
back as ``None`` (not applicable) rather than 0 or infinity.

Usage::

    agg = AnalyticsAggregator(timezone="Europe/Moscow")
    spec = FilterSpec(status=StatusFilter.CLOSED, symbols=("BTC",))
    report = agg.performance(positions, spec)
    print(report.win_rate, report.profit_factor, report.drawdown.max_drawdown_usd)
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Iterable, Literal

from trade_journal.core.clock import IClock, WallClock
from trade_journal.core.config import AnalyticsConfig
from trade_journal.core.enums import (
    CloseReason,
    Direction,
    ExitType,
    StatusFilter,
    TradeOutcome,
)

from .position import Position
from .temporal import DayRange, local_date, safe_day_key, today

logger = logging.getLogger(__name__)

# Close within this fraction of entry of the stop / take counts as hitting it
_LEVEL_TOLERANCE = 0.001


# ---------------------------------------------------------------------- #
# Filtering                                                               #
# ---------------------------------------------------------------------- #

@dataclass(frozen=True)
class FilterSpec:
    """Which positions a report covers.  Empty allow-lists allow all."""

    date_range: DayRange = field(default_factory=DayRange)
    status: StatusFilter = StatusFilter.ALL
    symbols: tuple[str, ...] = ()
    strategies: tuple[str, ...] = ()
    timeframes: tuple[str, ...] = ()
    directions: tuple[Direction, ...] = ()

    def __post_init__(self) -> None:
        # Accept "long" / "LONG" / Direction.LONG alike
        object.__setattr__(self, "directions", tuple(Direction(d) for d in self.directions))


def _has_close(position: Position) -> bool:
    return position.close_price is not None


def matches(position: Position, spec: FilterSpec, tz: str | tzinfo | None = "UTC") -> bool:
    """True iff *position* passes every part of *spec*."""
    if not spec.date_range.contains(local_date(position.reference_date, tz)):
        return False

    status = StatusFilter(spec.status)
    if status is StatusFilter.CLOSED and not _has_close(position):
        return False
    if status is StatusFilter.OPEN and _has_close(position):
        return False

    if spec.symbols and position.symbol not in spec.symbols:
        return False
    if spec.strategies and position.strategy not in spec.strategies:
        return False
    if spec.timeframes and position.timeframe not in spec.timeframes:
        return False
    if spec.directions and position.direction not in spec.directions:
        return False
    return True


def filter_positions(
    positions: Iterable[Position],
    spec: FilterSpec | None = None,
    tz: str | tzinfo | None = "UTC",
) -> list[Position]:
    if spec is None:
        return list(positions)
    return [p for p in positions if matches(p, spec, tz)]


# ---------------------------------------------------------------------- #
# Ordering / classification                                               #
# ---------------------------------------------------------------------- #

def chronological(
    positions: Iterable[Position],
    by: Literal["open", "close"] = "close",
) -> list[Position]:
    """Sort by close (falling back to open) or open time, ties by id.

    Sort once and hand the result to the detectors; storage order is
    never meaningful.
    """
    if by == "open":
        return sorted(positions, key=lambda p: (p.date_open, p.id))
    return sorted(positions, key=lambda p: (p.reference_date, p.date_open, p.id))


def closed_positions(positions: Iterable[Position]) -> list[Position]:
    """Closed positions that carry a PnL, in close order."""
    closed: list[Position] = []
    for p in positions:
        if not _has_close(p):
            continue
        if p.pnl_usd is None:
            logger.warning("Closed position %s has no pnl_usd; excluded", p.id)
            continue
        closed.append(p)
    return chronological(closed, by="close")


def classify_outcome(pnl_usd: float, be_threshold: float = 0.5) -> TradeOutcome:
    """WIN above the threshold, LOSS below its negative, else BREAKEVEN."""
    if pnl_usd > be_threshold:
        return TradeOutcome.WIN
    if pnl_usd < -be_threshold:
        return TradeOutcome.LOSS
    return TradeOutcome.BREAKEVEN


def exit_type(position: Position, be_threshold: float = 0.5) -> ExitType:
    """How the position ended: Stop, Take, Manual or Breakeven."""
    if not _has_close(position):
        return ExitType.OPEN
    pnl = position.pnl_usd or 0.0
    if abs(pnl) <= be_threshold:
        return ExitType.BREAKEVEN
    if position.close_reason == CloseReason.HIT_STOP:
        return ExitType.STOP
    if position.close_reason == CloseReason.HIT_TAKE:
        return ExitType.TAKE

    tolerance = position.entry_price * _LEVEL_TOLERANCE
    close = position.close_price or 0.0
    if position.stop_price is not None and abs(close - position.stop_price) < tolerance:
        return ExitType.STOP
    if position.take_price is not None and abs(close - position.take_price) < tolerance:
        return ExitType.TAKE
    return ExitType.MANUAL


# ---------------------------------------------------------------------- #
# Result types                                                            #
# ---------------------------------------------------------------------- #

@dataclass(frozen=True)
class EquityPoint:
    """Balance after one closed position (the first point is the start)."""

    position_id: str | None
    timestamp: datetime | None
    pnl_usd: float
    balance: float
    peak: float
    drawdown_usd: float
    drawdown_percent: float | None


@dataclass(frozen=True)
class DrawdownStats:
    max_drawdown_usd: float = 0.0
    max_drawdown_percent: float | None = None  # Of the running peak; None while the peak is <= 0
    peak_balance: float = 0.0
    trough_balance: float = 0.0
    trough_position_id: str | None = None


@dataclass(frozen=True)
class StreakStats:
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    current_outcome: TradeOutcome | None = None
    current_streak: int = 0


@dataclass(frozen=True)
class ExitBreakdown:
    stops: int = 0
    takes: int = 0
    manual: int = 0
    breakeven: int = 0
    trades_with_partials: int = 0
    avg_partial_count: float = 0.0
    trades_with_adds: int = 0
    avg_adds: float = 0.0


@dataclass(frozen=True)
class OpenExposure:
    open_count: int = 0
    total_risk_usd: float = 0.0
    total_risk_percent: float | None = None
    total_reward_usd: float = 0.0
    total_reward_percent: float | None = None
    rr_ratio: float | None = None
    no_risk: bool = False  # Every open stop sits at or beyond breakeven
    without_stop: int = 0


@dataclass(frozen=True)
class DailyStats:
    day: str
    pnl_usd: float
    pnl_percent: float
    count: int
    position_ids: tuple[str, ...]


@dataclass(frozen=True)
class PerformanceReport:
    """Aggregate performance over closed positions."""

    closed_count: int
    open_count: int
    wins: int
    losses: int
    breakevens: int
    win_rate: float | None
    profit_factor: float | None
    expectancy: float | None
    net_pnl_usd: float
    net_pnl_percent: float | None
    gross_profit: float
    gross_loss: float
    avg_win: float | None
    avg_loss: float | None
    avg_r: float | None
    initial_balance: float
    final_balance: float
    equity_curve: list[EquityPoint]
    drawdown: DrawdownStats
    streaks: StreakStats
    r_distribution: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for point in data["equity_curve"]:
            ts = point["timestamp"]
            point["timestamp"] = ts.isoformat() if ts else None
        outcome = data["streaks"]["current_outcome"]
        data["streaks"]["current_outcome"] = outcome.value if outcome else None
        return data


# ---------------------------------------------------------------------- #
# Pure reductions over a chronologically sorted closed list               #
# ---------------------------------------------------------------------- #

def equity_curve(closed: list[Position], initial_balance: float) -> list[EquityPoint]:
    """Walk cumulative balance over *closed* (already in close order)."""
    points = [
        EquityPoint(
            position_id=None,
            timestamp=None,
            pnl_usd=0.0,
            balance=initial_balance,
            peak=initial_balance,
            drawdown_usd=0.0,
            drawdown_percent=0.0 if initial_balance > 0 else None,
        )
    ]
    balance = initial_balance
    peak = initial_balance
    for p in closed:
        pnl = p.pnl_usd or 0.0
        balance += pnl
        peak = max(peak, balance)
        dd = peak - balance
        points.append(
            EquityPoint(
                position_id=p.id,
                timestamp=p.date_close,
                pnl_usd=pnl,
                balance=balance,
                peak=peak,
                drawdown_usd=dd,
                drawdown_percent=dd / peak * 100.0 if peak > 0 else None,
            )
        )
    return points


def max_drawdown(curve: list[EquityPoint]) -> DrawdownStats:
    """Deepest dip below the running peak, in dollars and in percent.

    The two maxima are tracked separately: an early loss against a small
    peak can be the worst in percent while a later one is the worst in
    dollars.  The peak / trough fields describe the dollar maximum.
    """
    if not curve:
        return DrawdownStats()
    worst = curve[0]
    worst_percent: float | None = None
    for point in curve:
        if point.drawdown_usd > worst.drawdown_usd:
            worst = point
        if point.drawdown_percent is not None:
            worst_percent = max(worst_percent or 0.0, point.drawdown_percent)
    if worst.drawdown_usd <= 0:
        start = curve[0].balance
        return DrawdownStats(
            max_drawdown_percent=worst_percent,
            peak_balance=start,
            trough_balance=start,
        )
    return DrawdownStats(
        max_drawdown_usd=worst.drawdown_usd,
        max_drawdown_percent=worst_percent,
        peak_balance=worst.peak,
        trough_balance=worst.balance,
        trough_position_id=worst.position_id,
    )


def streaks(closed: list[Position], be_threshold: float = 0.5) -> StreakStats:
    """Longest same-outcome runs; a breakeven ends any run."""
    longest = {TradeOutcome.WIN: 0, TradeOutcome.LOSS: 0}
    current_kind: TradeOutcome | None = None
    current = 0
    for p in closed:
        kind = classify_outcome(p.pnl_usd or 0.0, be_threshold)
        if kind is TradeOutcome.BREAKEVEN:
            current_kind, current = None, 0
            continue
        if kind is current_kind:
            current += 1
        else:
            current_kind, current = kind, 1
        longest[kind] = max(longest[kind], current)
    return StreakStats(
        longest_win_streak=longest[TradeOutcome.WIN],
        longest_loss_streak=longest[TradeOutcome.LOSS],
        current_outcome=current_kind,
        current_streak=current,
    )


def r_bucket_labels(edges: list[float]) -> list[str]:
    labels = [f"<{edges[0]:g}"]
    labels += [f"{lo:g}..{hi:g}" for lo, hi in zip(edges, edges[1:])]
    labels.append(f">={edges[-1]:g}")
    return labels


def r_distribution(closed: Iterable[Position], edges: list[float]) -> dict[str, int]:
    """Histogram of R-multiples; buckets are ``[lo, hi)``."""
    labels = r_bucket_labels(edges)
    counts = dict.fromkeys(labels, 0)
    for p in closed:
        if p.r_multiple is None:
            continue
        counts[labels[bisect_right(edges, p.r_multiple)]] += 1
    return counts


# ---------------------------------------------------------------------- #
# Aggregator                                                              #
# ---------------------------------------------------------------------- #

class AnalyticsAggregator:
    """Filter + reduce a position list into report structures.

    Parameters
    ----------
    config : AnalyticsConfig
        Breakeven threshold, default starting balance and R buckets.
    timezone : str
        User timezone for date filtering and day bucketing.
    clock : IClock
        Defines "today" for :meth:`today_pnl`.
    """

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        *,
        timezone: str | tzinfo | None = "UTC",
        clock: IClock | None = None,
    ) -> None:
        self._config = config or AnalyticsConfig()
        self._tz = timezone
        self._clock = clock or WallClock()

    @property
    def be_threshold(self) -> float:
        return self._config.be_threshold

    def filter(self, positions: Iterable[Position], spec: FilterSpec | None = None) -> list[Position]:
        return filter_positions(positions, spec, self._tz)

    # ------------------------------------------------------------------ #
    # Performance                                                          #
    # ------------------------------------------------------------------ #

    def performance(
        self,
        positions: Iterable[Position],
        spec: FilterSpec | None = None,
        *,
        initial_balance: float | None = None,
    ) -> PerformanceReport:
        """Full performance report over the filtered positions."""
        start = self._config.initial_balance if initial_balance is None else initial_balance
        selected = self.filter(positions, spec)
        closed = closed_positions(selected)
        open_count = sum(1 for p in selected if not _has_close(p))
        thr = self.be_threshold

        win_pnls: list[float] = []
        loss_pnls: list[float] = []
        breakevens = 0
        for p in closed:
            pnl = p.pnl_usd or 0.0
            outcome = classify_outcome(pnl, thr)
            if outcome is TradeOutcome.WIN:
                win_pnls.append(pnl)
            elif outcome is TradeOutcome.LOSS:
                loss_pnls.append(pnl)
            else:
                breakevens += 1

        gross_profit = sum(win_pnls)
        gross_loss = abs(sum(loss_pnls))
        net = sum(p.pnl_usd or 0.0 for p in closed)
        decided = len(win_pnls) + len(loss_pnls)
        r_values = [p.r_multiple for p in closed if p.r_multiple is not None]

        curve = equity_curve(closed, start)
        return PerformanceReport(
            closed_count=len(closed),
            open_count=open_count,
            wins=len(win_pnls),
            losses=len(loss_pnls),
            breakevens=breakevens,
            win_rate=len(win_pnls) / decided if decided else None,
            profit_factor=gross_profit / gross_loss if loss_pnls and gross_loss > 0 else None,
            expectancy=net / len(closed) if closed else None,
            net_pnl_usd=net,
            net_pnl_percent=net / start * 100.0 if start > 0 else None,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            avg_win=gross_profit / len(win_pnls) if win_pnls else None,
            avg_loss=gross_loss / len(loss_pnls) if loss_pnls else None,
            avg_r=sum(r_values) / len(r_values) if r_values else None,
            initial_balance=start,
            final_balance=curve[-1].balance,
            equity_curve=curve,
            drawdown=max_drawdown(curve),
            streaks=streaks(closed, thr),
            r_distribution=r_distribution(closed, self._config.r_buckets),
        )

    def equity_curve(
        self,
        positions: Iterable[Position],
        *,
        initial_balance: float | None = None,
    ) -> list[EquityPoint]:
        start = self._config.initial_balance if initial_balance is None else initial_balance
        return equity_curve(closed_positions(positions), start)

    def streaks(self, positions: Iterable[Position]) -> StreakStats:
        return streaks(closed_positions(positions), self.be_threshold)

    def r_distribution(self, positions: Iterable[Position]) -> dict[str, int]:
        return r_distribution(closed_positions(positions), self._config.r_buckets)

    # ------------------------------------------------------------------ #
    # Exits / exposure                                                     #
    # ------------------------------------------------------------------ #

    def exit_breakdown(self, positions: Iterable[Position]) -> ExitBreakdown:
        counts: dict[ExitType, int] = defaultdict(int)
        with_partials = total_partials = with_adds = total_adds = 0
        for p in closed_positions(positions):
            counts[exit_type(p, self.be_threshold)] += 1
            if p.partial_closes:
                with_partials += 1
                total_partials += len(p.partial_closes)
            if p.adds:
                with_adds += 1
                total_adds += len(p.adds)
        return ExitBreakdown(
            stops=counts[ExitType.STOP],
            takes=counts[ExitType.TAKE],
            manual=counts[ExitType.MANUAL],
            breakeven=counts[ExitType.BREAKEVEN],
            trades_with_partials=with_partials,
            avg_partial_count=total_partials / with_partials if with_partials else 0.0,
            trades_with_adds=with_adds,
            avg_adds=total_adds / with_adds if with_adds else 0.0,
        )

    def open_exposure(
        self,
        positions: Iterable[Position],
        current_balance: float,
    ) -> OpenExposure:
        """Risk and reward currently on the table across open positions."""
        open_positions = [p for p in positions if not _has_close(p)]
        risk = reward = 0.0
        without_stop = 0
        for p in open_positions:
            if p.risk_usd is None:
                without_stop += 1
            else:
                risk += p.risk_usd
            reward += p.reward_usd or 0.0

        pct = (lambda v: v / current_balance * 100.0) if current_balance > 0 else (lambda v: None)
        no_risk = bool(open_positions) and without_stop == 0 and risk < 0.01
        return OpenExposure(
            open_count=len(open_positions),
            total_risk_usd=risk,
            total_risk_percent=pct(risk),
            total_reward_usd=reward,
            total_reward_percent=pct(reward),
            rr_ratio=reward / risk if risk >= 0.01 else None,
            no_risk=no_risk,
            without_stop=without_stop,
        )

    # ------------------------------------------------------------------ #
    # Calendar                                                             #
    # ------------------------------------------------------------------ #

    def daily_pnl(self, positions: Iterable[Position]) -> dict[str, DailyStats]:
        """Closed PnL per calendar day (user timezone), oldest first."""
        buckets: dict[str, list[Position]] = defaultdict(list)
        for p in closed_positions(positions):
            key = safe_day_key(p.reference_date, self._tz)
            if key is None:
                continue
            buckets[key].append(p)

        result: dict[str, DailyStats] = {}
        for day in sorted(buckets):
            items = buckets[day]
            result[day] = DailyStats(
                day=day,
                pnl_usd=sum(p.pnl_usd or 0.0 for p in items),
                pnl_percent=sum(
                    (p.pnl_usd or 0.0) / p.account_balance_at_entry * 100.0
                    for p in items
                ),
                count=len(items),
                position_ids=tuple(p.id for p in items),
            )
        return result

    def today_pnl(self, positions: Iterable[Position]) -> float:
        """PnL booked today: closed positions plus partials of open ones."""
        day = today(self._tz, self._clock)
        total = 0.0
        for p in positions:
            if _has_close(p):
                if p.date_close is not None and safe_day_key(p.date_close, self._tz) == day:
                    total += p.pnl_usd or 0.0
                continue
            for leg in p.partial_closes:
                if safe_day_key(leg.timestamp, self._tz) == day:
                    total += leg.pnl_usd
        return total
