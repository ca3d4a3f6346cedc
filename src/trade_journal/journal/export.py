"""Position export: CSV/JSON output and periodic report generation.

Exports positions in flat formats for spreadsheets and archival, and
groups closed positions into daily / weekly / monthly buckets in the
user's timezone.

Usage::

    exporter = PositionExporter(timezone="America/New_York")
    csv_str = exporter.to_csv(positions)
    json_str = exporter.to_json(positions)
    report = exporter.periodic_report(positions, period="weekly")
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections import defaultdict
from datetime import tzinfo
from typing import Any, Callable

from trade_journal.core.enums import TradeOutcome
from trade_journal.core.errors import InvalidTimestamp

from .analytics import classify_outcome, closed_positions, exit_type
from .position import Position
from .temporal import TimestampLike, month_key, safe_day_key, week_key

logger = logging.getLogger(__name__)

# Default CSV columns
_CSV_COLUMNS = [
    "id",
    "symbol",
    "direction",
    "strategy",
    "timeframe",
    "status",
    "outcome",
    "exit_type",
    "entry_price",
    "original_entry_price",
    "close_price",
    "stop_price",
    "take_price",
    "position_size_usd",
    "initial_size_usd",
    "risk_usd",
    "risk_percent",
    "max_risk_usd",
    "rr_ratio",
    "pnl_usd",
    "pnl_percent",
    "r_multiple",
    "duration_minutes",
    "date_open",
    "date_close",
    "close_reason",
    "adds",
    "partial_closes",
    "tags",
    "notes",
]

_PERIODS = ("daily", "weekly", "monthly")


def _round(value: float | None, dp: int) -> float | None:
    return round(value, dp) if value is not None else None


class PositionExporter:
    """Export positions to CSV/JSON and generate periodic reports.

    Parameters
    ----------
    timezone : str
        Calendar for day / week / month buckets.  Default UTC.
    be_threshold : float
        Breakeven band used for the ``outcome`` column and win counts.
    decimal_places : int
        Rounding precision for numeric fields.  Default 4.
    """

    def __init__(
        self,
        *,
        timezone: str | tzinfo | None = "UTC",
        be_threshold: float = 0.5,
        decimal_places: int = 4,
    ) -> None:
        self._tz = timezone
        self._be = be_threshold
        self._dp = decimal_places

    # ------------------------------------------------------------------ #
    # CSV Export                                                           #
    # ------------------------------------------------------------------ #

    def to_csv(
        self,
        positions: list[Position],
        *,
        columns: list[str] | None = None,
    ) -> str:
        """Export positions as a CSV string.

        Parameters
        ----------
        positions : list[Position]
            Positions to export, open or closed.
        columns : list[str] | None
            Column selection.  Defaults to ``_CSV_COLUMNS``.

        Returns
        -------
        str
            CSV-formatted string with header row.
        """
        cols = columns or _CSV_COLUMNS
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=cols, extrasaction="ignore")
        writer.writeheader()

        for position in positions:
            row = self._position_to_row(position)
            writer.writerow({c: "" if row.get(c) is None else row[c] for c in cols})

        return buf.getvalue()

    # ------------------------------------------------------------------ #
    # JSON Export                                                          #
    # ------------------------------------------------------------------ #

    def to_json(self, positions: list[Position], *, indent: int = 2) -> str:
        """Export positions as a JSON list of flat objects."""
        rows = [self._position_to_row(p) for p in positions]
        return json.dumps(rows, indent=indent, default=str)

    # ------------------------------------------------------------------ #
    # Periodic Report                                                      #
    # ------------------------------------------------------------------ #

    def periodic_report(
        self,
        positions: list[Position],
        *,
        period: str = "daily",
    ) -> dict[str, Any]:
        """Group closed positions by close date and summarise each bucket.

        Parameters
        ----------
        positions : list[Position]
            Positions to analyse; open ones are ignored.
        period : str
            ``"daily"``, ``"weekly"`` (Monday-start) or ``"monthly"``.

        Returns
        -------
        dict
            ``period`` : str
            ``buckets`` : list of dicts with per-period stats, oldest first
            ``totals`` : overall summary across all periods
        """
        if period not in _PERIODS:
            raise ValueError(f"period must be one of {_PERIODS}, got {period!r}")

        closed = closed_positions(positions)
        if not closed:
            return {"period": period, "buckets": [], "totals": self._group_stats("all", [])}

        keyer = self._keyer(period)
        buckets: dict[str, list[Position]] = defaultdict(list)
        for position in closed:
            key = keyer(position.reference_date)
            if key:
                buckets[key].append(position)

        bucket_summaries = [self._group_stats(k, buckets[k]) for k in sorted(buckets)]
        totals = self._group_stats("all", closed)
        totals.pop("period_key", None)

        return {
            "period": period,
            "buckets": bucket_summaries,
            "totals": totals,
        }

    # ------------------------------------------------------------------ #
    # Private helpers                                                      #
    # ------------------------------------------------------------------ #

    def _keyer(self, period: str) -> Callable[[TimestampLike], str | None]:
        if period == "daily":
            return lambda ts: safe_day_key(ts, self._tz)
        fn = week_key if period == "weekly" else month_key

        def _key(ts: TimestampLike) -> str | None:
            try:
                return fn(ts, self._tz)
            except InvalidTimestamp as exc:
                logger.warning("Excluding record from %s bucket: %s", period, exc)
                return None

        return _key

    def _position_to_row(self, p: Position) -> dict[str, Any]:
        """Flatten a Position for export."""
        dp = self._dp
        closed = p.close_price is not None
        return {
            "id": p.id,
            "symbol": p.symbol,
            "direction": p.direction.value,
            "strategy": p.strategy,
            "timeframe": p.timeframe,
            "status": p.status.value,
            "outcome": (
                classify_outcome(p.pnl_usd, self._be).value
                if closed and p.pnl_usd is not None
                else None
            ),
            "exit_type": exit_type(p, self._be).value,
            "entry_price": _round(p.entry_price, dp),
            "original_entry_price": _round(p.original_entry_price, dp),
            "close_price": _round(p.close_price, dp),
            "stop_price": _round(p.stop_price, dp),
            "take_price": _round(p.take_price, dp),
            "position_size_usd": _round(p.position_size_usd, dp),
            "initial_size_usd": _round(p.initial_size_usd, dp),
            "risk_usd": _round(p.risk_usd, dp),
            "risk_percent": _round(p.risk_percent, dp),
            "max_risk_usd": _round(p.max_risk_usd, dp),
            "rr_ratio": _round(p.rr_ratio, dp),
            "pnl_usd": _round(p.pnl_usd, dp),
            "pnl_percent": _round(p.pnl_percent, dp),
            "r_multiple": _round(p.r_multiple, dp),
            "duration_minutes": _round(p.duration_minutes, dp),
            "date_open": p.date_open.isoformat(),
            "date_close": p.date_close.isoformat() if p.date_close else None,
            "close_reason": p.close_reason.value if p.close_reason else None,
            "adds": len(p.adds),
            "partial_closes": len(p.partial_closes),
            "tags": ",".join(p.tags),
            "notes": p.notes,
        }

    def _group_stats(self, key: str, group: list[Position]) -> dict[str, Any]:
        """Aggregate statistics for one bucket of closed positions."""
        dp = self._dp
        pnls = [p.pnl_usd or 0.0 for p in group]
        outcomes = [classify_outcome(v, self._be) for v in pnls]
        wins = [v for v, o in zip(pnls, outcomes) if o is TradeOutcome.WIN]
        losses = [v for v, o in zip(pnls, outcomes) if o is TradeOutcome.LOSS]
        gross_wins = sum(wins)
        gross_losses = abs(sum(losses))
        decided = len(wins) + len(losses)
        total = sum(pnls)
        r_values = [p.r_multiple for p in group if p.r_multiple is not None]

        return {
            "period_key": key,
            "trades": len(group),
            "wins": len(wins),
            "losses": len(losses),
            "breakevens": len(group) - decided,
            "win_rate": round(len(wins) / decided, dp) if decided else None,
            "total_pnl": round(total, dp),
            "avg_pnl": round(total / len(group), dp) if group else None,
            "avg_r": round(sum(r_values) / len(r_values), dp) if r_values else None,
            "profit_factor": round(gross_wins / gross_losses, dp) if gross_losses > 0 else None,
            "best_trade": round(max(pnls), dp) if pnls else None,
            "worst_trade": round(min(pnls), dp) if pnls else None,
        }
