"""JournalEngine: one object wiring settings, clock and components.

Hosts (a web backend, a notebook, a batch job) normally talk to this
facade rather than building the ledger, aggregator and detectors by
hand.  It owns no position state: positions are loaded from records,
passed in, and handed back for the caller to persist.

Usage::

    engine = JournalEngine(load_settings("journal.toml"))
    positions, rejected = engine.load(store.list_trades())
    spec = engine.filter_spec(RangePreset.MTD, status=StatusFilter.CLOSED)
    dashboard = engine.dashboard(positions, spec, current_balance=102_500)
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import tzinfo
from typing import Any, Iterable, Mapping

from trade_journal.core.clock import IClock, WallClock
from trade_journal.core.config import Settings
from trade_journal.core.enums import RangePreset, StatusFilter
from trade_journal.observability.logger import get_logger, report_context

from .analytics import AnalyticsAggregator, FilterSpec, PerformanceReport, chronological
from .behavior import RevengeTradeDetector, TiltDetector, TiltReport
from .export import PositionExporter
from .ledger import PositionLedger
from .position import Position
from .records import RejectedRecord, position_to_record, positions_from_records
from .temporal import TimestampLike, resolve_range, resolve_timezone

logger = get_logger(__name__)


class JournalEngine:
    """Facade over the journal components.

    Parameters
    ----------
    settings : Settings
        Engine settings; defaults are used when omitted.
    clock : IClock
        Source of "now" for the ledger, "today" and range presets.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: IClock | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._clock = clock or WallClock()
        self._tz: tzinfo = resolve_timezone(self._settings.timezone)

        analytics = self._settings.analytics
        behavior = self._settings.behavior
        self.ledger = PositionLedger(
            clock=self._clock,
            config=self._settings.ledger,
            size_epsilon=analytics.size_epsilon,
        )
        self.analytics = AnalyticsAggregator(analytics, timezone=self._tz, clock=self._clock)
        self.revenge = RevengeTradeDetector(
            window_minutes=behavior.revenge_window_minutes,
            be_threshold=analytics.be_threshold,
        )
        self.tilt = TiltDetector(
            behavior,
            timezone=self._tz,
            be_threshold=analytics.be_threshold,
        )
        self.exporter = PositionExporter(timezone=self._tz, be_threshold=analytics.be_threshold)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    # ------------------------------------------------------------------ #
    # Persistence boundary                                                 #
    # ------------------------------------------------------------------ #

    def load(
        self,
        records: Iterable[Mapping[str, Any]],
    ) -> tuple[list[Position], list[RejectedRecord]]:
        """Records -> positions; bad records are returned, not raised."""
        return positions_from_records(
            records,
            default_balance=self._settings.analytics.initial_balance,
        )

    @staticmethod
    def dump(position: Position) -> dict[str, Any]:
        return position_to_record(position)

    # ------------------------------------------------------------------ #
    # Filtering                                                            #
    # ------------------------------------------------------------------ #

    def filter_spec(
        self,
        preset: RangePreset | str = RangePreset.ALL,
        *,
        date_from: TimestampLike | None = None,
        date_to: TimestampLike | None = None,
        status: StatusFilter | str = StatusFilter.ALL,
        symbols: Iterable[str] = (),
        strategies: Iterable[str] = (),
        timeframes: Iterable[str] = (),
        directions: Iterable[str] = (),
    ) -> FilterSpec:
        """Build a :class:`FilterSpec` with the range resolved in the user's timezone."""
        return FilterSpec(
            date_range=resolve_range(
                preset,
                tz=self._tz,
                clock=self._clock,
                date_from=date_from,
                date_to=date_to,
            ),
            status=StatusFilter(status),
            symbols=tuple(symbols),
            strategies=tuple(strategies),
            timeframes=tuple(timeframes),
            directions=tuple(directions),
        )

    # ------------------------------------------------------------------ #
    # Reports                                                              #
    # ------------------------------------------------------------------ #

    def performance(
        self,
        positions: Iterable[Position],
        spec: FilterSpec | None = None,
    ) -> PerformanceReport:
        return self.analytics.performance(positions, spec)

    def tilt_report(self, positions: Iterable[Position]) -> TiltReport:
        return self.tilt.evaluate(positions)

    def dashboard(
        self,
        positions: Iterable[Position],
        spec: FilterSpec | None = None,
        *,
        current_balance: float | None = None,
    ) -> dict[str, Any]:
        """Everything a journal dashboard shows, as one JSON-ready dict.

        The position list is filtered and sorted once; every detector
        then runs over the same chronological slice.
        """
        all_positions = list(positions)
        selected = chronological(self.analytics.filter(all_positions, spec), by="open")

        with report_context(timezone=str(self._tz), positions=len(selected)):
            perf = self.analytics.performance(selected)
            balance = perf.final_balance if current_balance is None else current_balance
            exposure = self.analytics.open_exposure(selected, balance)
            revenge = self.revenge.detect(selected, assume_sorted=True)
            summary = self.revenge.summarize(revenge)
            tilt = self.tilt.evaluate(selected)

            logger.info(
                "dashboard_built",
                closed=perf.closed_count,
                open=perf.open_count,
                revenge_trades=summary.count,
                tilted=tilt.is_tilted,
            )

        return {
            "performance": perf.to_dict(),
            "exits": asdict(self.analytics.exit_breakdown(selected)),
            "exposure": asdict(exposure),
            "daily": {k: asdict(v) for k, v in self.analytics.daily_pnl(selected).items()},
            "today_pnl": self.analytics.today_pnl(all_positions),
            "revenge": {
                "count": summary.count,
                "total_pnl_usd": summary.total_pnl_usd,
                "avg_pnl_usd": summary.avg_pnl_usd,
                "trades": [r.to_dict() for r in revenge],
            },
            "tilt": tilt.to_dict(),
        }
