"""Position lifecycle & trading analytics.

Key components
--------------
**Lifecycle**

Position              Immutable snapshot of one trade, first fill to full close
PositionLedger        Event -> new snapshot state machine (add, partial close, stops)
calculate             Risk / reward / R:R for a set of levels

**Analytics**

AnalyticsAggregator   Win rate, profit factor, equity curve, drawdown, streaks
FilterSpec            Date range + status + allow-list filter
RevengeTradeDetector  Positions opened right after a losing close
TiltDetector          Loss streak, risk escalation and overtrading signals

**Persistence & Export**

positions_from_records  Legacy-alias migration with bad-record isolation
PositionExporter        CSV/JSON export and periodic reports
JournalEngine           Facade wiring settings and clock into all of the above
"""

from .position import ActionEntry, AddLeg, PartialCloseLeg, Position
from .risk import RiskReward, calculate
from .ledger import PositionLedger, risk_basis
from .records import (
    InvalidRecord,
    RejectedRecord,
    position_from_record,
    position_to_record,
    positions_from_records,
)
from .analytics import (
    AnalyticsAggregator,
    FilterSpec,
    PerformanceReport,
    classify_outcome,
    exit_type,
)
from .behavior import RevengeTrade, RevengeTradeDetector, TiltDetector, TiltReport
from .export import PositionExporter
from .engine import JournalEngine

__all__ = [
    "ActionEntry",
    "AddLeg",
    "PartialCloseLeg",
    "Position",
    "RiskReward",
    "calculate",
    "PositionLedger",
    "risk_basis",
    "InvalidRecord",
    "RejectedRecord",
    "position_from_record",
    "position_to_record",
    "positions_from_records",
    "AnalyticsAggregator",
    "FilterSpec",
    "PerformanceReport",
    "classify_outcome",
    "exit_type",
    "RevengeTrade",
    "RevengeTradeDetector",
    "TiltDetector",
    "TiltReport",
    "PositionExporter",
    "JournalEngine",
]
