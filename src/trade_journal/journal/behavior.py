"""Behavioural detectors: revenge trading and tilt.

Both detectors are pure functions over an explicit position list.
Revenge detection works in open order; a caller that already sorted by
open time (:func:`~trade_journal.journal.analytics.chronological` with
``by="open"``) can pass ``assume_sorted=True`` to skip the sort.  Tilt
works in close order and always sorts its closed positions itself.

A revenge trade is a position opened shortly after a real loss closed.
Tilt is a composite state built from three independent signals:

- **streak**: longest run of consecutive losses
- **risk**: mean ``risk_percent`` over the most recent closed positions
- **frequency**: most positions opened on one calendar day

A signal whose precondition is not met (e.g. fewer than five recent
trades) is ``None``, meaning "not evaluated", which is distinct from a
signal that was evaluated and did not trigger.

Usage::

    revenge = RevengeTradeDetector(window_minutes=30)
    for hit in revenge.detect(positions):
        print(hit.position.id, "opened", hit.delta_minutes, "min after a loss")

    tilt = TiltDetector(BehaviorConfig(), timezone="Europe/Berlin")
    report = tilt.evaluate(positions)
    if report.is_tilted:
        print(report.to_dict())
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Iterable

from trade_journal.core.config import BehaviorConfig
from trade_journal.core.enums import Severity, TradeOutcome

from .analytics import chronological, classify_outcome, closed_positions
from .position import Position
from .temporal import minutes_between, safe_day_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------- #
# Revenge trading                                                         #
# ---------------------------------------------------------------------- #

@dataclass(frozen=True)
class RevengeTrade:
    """*position* was opened *delta_minutes* after *loss* closed."""

    position: Position
    loss: Position
    delta_minutes: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "position_id": self.position.id,
            "loss_id": self.loss.id,
            "delta_minutes": round(self.delta_minutes, 2),
            "pnl_usd": self.position.pnl_usd,
            "loss_pnl_usd": self.loss.pnl_usd,
        }


@dataclass(frozen=True)
class RevengeSummary:
    count: int
    total_pnl_usd: float
    avg_pnl_usd: float | None
    closed_count: int  # Revenge trades that have a result yet


class RevengeTradeDetector:
    """Flag positions opened within a window after a losing close.

    Parameters
    ----------
    window_minutes : float
        Maximum minutes between the loss close and the new open.
        Default 30.
    be_threshold : float
        A prior position only counts as a loss when
        ``pnl_usd < -be_threshold``.  Default 0.5.
    """

    def __init__(self, *, window_minutes: float = 30, be_threshold: float = 0.5) -> None:
        self._window = window_minutes
        self._be_threshold = be_threshold

    def _is_loss(self, position: Position) -> bool:
        if position.close_price is None or position.date_close is None:
            return False
        if position.pnl_usd is None:
            return False
        return classify_outcome(position.pnl_usd, self._be_threshold) is TradeOutcome.LOSS

    def detect(
        self,
        positions: Iterable[Position],
        *,
        assume_sorted: bool = False,
    ) -> list[RevengeTrade]:
        """Return one :class:`RevengeTrade` per flagged position.

        Each position is paired with the nearest loss that closed
        strictly before it opened; older losses are never considered,
        so a position is flagged at most once.
        """
        ordered = list(positions) if assume_sorted else chronological(positions, by="open")
        losses = sorted(
            (p for p in ordered if self._is_loss(p)),
            key=lambda p: p.date_close,
        )
        if not losses:
            return []

        flagged: list[RevengeTrade] = []
        for position in ordered:
            nearest: Position | None = None
            for loss in losses:
                if loss.id == position.id:
                    continue
                if loss.date_close >= position.date_open:
                    break
                nearest = loss
            if nearest is None:
                continue
            delta = minutes_between(position.date_open, nearest.date_close)
            if 0 < delta <= self._window:
                flagged.append(RevengeTrade(position, nearest, delta))

        if flagged:
            logger.info(
                "Detected %d revenge trades within %s minutes of a loss",
                len(flagged),
                self._window,
            )
        return flagged

    def summary(
        self,
        positions: Iterable[Position],
        *,
        assume_sorted: bool = False,
    ) -> RevengeSummary:
        """Count and PnL of revenge trades (only closed ones carry PnL)."""
        return self.summarize(self.detect(positions, assume_sorted=assume_sorted))

    @staticmethod
    def summarize(hits: list[RevengeTrade]) -> RevengeSummary:
        pnls = [h.position.pnl_usd for h in hits if h.position.pnl_usd is not None]
        total = sum(pnls)
        return RevengeSummary(
            count=len(hits),
            total_pnl_usd=total,
            avg_pnl_usd=total / len(pnls) if pnls else None,
            closed_count=len(pnls),
        )


# ---------------------------------------------------------------------- #
# Tilt                                                                    #
# ---------------------------------------------------------------------- #

@dataclass(frozen=True)
class TiltSignal:
    """One evaluated tilt signal."""

    triggered: bool
    severity: Severity
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "triggered": self.triggered,
            "severity": self.severity.value,
            "value": round(self.value, 4),
        }


@dataclass(frozen=True)
class TiltReport:
    streak: TiltSignal | None
    risk: TiltSignal | None
    frequency: TiltSignal | None
    current_loss_streak: int = 0

    @property
    def signals(self) -> dict[str, TiltSignal]:
        """Evaluated signals that triggered, keyed by name."""
        named = {"streak": self.streak, "risk": self.risk, "frequency": self.frequency}
        return {k: s for k, s in named.items() if s is not None and s.triggered}

    @property
    def is_tilted(self) -> bool:
        return bool(self.signals)

    @property
    def severity(self) -> Severity:
        sev = [s.severity for s in self.signals.values()]
        if Severity.HIGH in sev:
            return Severity.HIGH
        if Severity.MEDIUM in sev:
            return Severity.MEDIUM
        return Severity.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_tilted": self.is_tilted,
            "severity": self.severity.value,
            "current_loss_streak": self.current_loss_streak,
            "streak": self.streak.to_dict() if self.streak else None,
            "risk": self.risk.to_dict() if self.risk else None,
            "frequency": self.frequency.to_dict() if self.frequency else None,
        }


def _grade(value: float, threshold: float, high: float, *, inclusive: bool) -> TiltSignal:
    if inclusive:
        triggered, is_high = value >= threshold, value >= high
    else:
        triggered, is_high = value > threshold, value > high
    if not triggered:
        return TiltSignal(False, Severity.NONE, value)
    return TiltSignal(True, Severity.HIGH if is_high else Severity.MEDIUM, value)


class TiltDetector:
    """Evaluate the three tilt signals over closed positions.

    Parameters
    ----------
    config : BehaviorConfig
        Thresholds for each signal.
    timezone : str
        Calendar used for the per-day frequency count.
    be_threshold : float
        Losses are ``pnl_usd < -be_threshold``; breakevens end a streak.
    """

    def __init__(
        self,
        config: BehaviorConfig | None = None,
        *,
        timezone: str | tzinfo | None = "UTC",
        be_threshold: float = 0.5,
    ) -> None:
        self._config = config or BehaviorConfig()
        self._tz = timezone
        self._be_threshold = be_threshold

    def evaluate(self, positions: Iterable[Position]) -> TiltReport:
        """Evaluate every signal over the closed positions in close order.

        Streaks and the recent-risk window depend on the order trades
        ended, so the input is always re-sorted by close time here; a
        list already sorted by open time for the revenge detector is
        fine to pass.
        """
        closed = closed_positions(positions)

        longest, current = self._loss_streaks(closed)
        report = TiltReport(
            streak=self._streak_signal(closed, longest),
            risk=self._risk_signal(closed),
            frequency=self._frequency_signal(closed),
            current_loss_streak=current,
        )
        for name, signal in report.signals.items():
            if signal.severity is Severity.HIGH:
                logger.warning("Tilt signal %s at HIGH severity (value=%.2f)", name, signal.value)
        return report

    # ------------------------------------------------------------------ #
    # Individual signals                                                   #
    # ------------------------------------------------------------------ #

    def _loss_streaks(self, closed: list[Position]) -> tuple[int, int]:
        longest = current = 0
        for p in closed:
            if classify_outcome(p.pnl_usd or 0.0, self._be_threshold) is TradeOutcome.LOSS:
                current += 1
                longest = max(longest, current)
            else:
                current = 0
        return longest, current

    def _streak_signal(self, closed: list[Position], longest: int) -> TiltSignal | None:
        if not closed:
            return None
        cfg = self._config
        return _grade(
            longest,
            cfg.tilt_streak_threshold,
            cfg.tilt_streak_high,
            inclusive=True,
        )

    def _risk_signal(self, closed: list[Position]) -> TiltSignal | None:
        cfg = self._config
        recent = closed[-cfg.tilt_risk_window:]
        if len(recent) < cfg.tilt_risk_window:
            return None
        if any(p.risk_percent is None for p in recent):
            # A stopless trade in the window leaves its mean undefined
            return None
        avg = sum(p.risk_percent for p in recent) / len(recent)
        return _grade(avg, cfg.tilt_risk_threshold_pct, cfg.tilt_risk_high_pct, inclusive=False)

    def _frequency_signal(self, closed: list[Position]) -> TiltSignal | None:
        per_day = Counter(
            key
            for key in (safe_day_key(p.date_open, self._tz) for p in closed)
            if key is not None
        )
        if not per_day:
            return None
        cfg = self._config
        busiest = max(per_day.values())
        return _grade(
            busiest,
            cfg.tilt_daily_trades_threshold,
            cfg.tilt_daily_trades_high,
            inclusive=False,
        )
