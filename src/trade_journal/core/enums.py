"""Enumerations used across the journal engine."""

from enum import Enum


class Direction(str, Enum):
    LONG = "Long"
    SHORT = "Short"

    @classmethod
    def _missing_(cls, value: object) -> "Direction | None":
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    MANUAL = "manual"
    HIT_STOP = "hit_stop"
    HIT_TAKE = "hit_take"
    FULLY_SCALED_OUT = "fully_scaled_out"  # PartialClose reduced size to zero


class ActionKind(str, Enum):
    OPEN = "open"
    ADD = "add"
    PARTIAL_CLOSE = "partial_close"
    STOP_ADJUST = "stop_adjust"
    MOVE_TO_BREAKEVEN = "move_to_breakeven"
    TAKE_ADJUST = "take_adjust"
    CLOSE = "close"
    HIT_STOP = "hit_stop"
    HIT_TAKE = "hit_take"


class TradeOutcome(str, Enum):
    """Win / loss / break-even classification."""

    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class ExitType(str, Enum):
    STOP = "Stop"
    TAKE = "Take"
    MANUAL = "Manual"
    BREAKEVEN = "Breakeven"
    OPEN = "Open"


class Severity(str, Enum):
    NONE = "none"
    MEDIUM = "medium"
    HIGH = "high"


class StatusFilter(str, Enum):
    ALL = "all"
    OPEN = "open"
    CLOSED = "closed"


class RangePreset(str, Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"      # Last 7 days
    MONTH = "month"    # Last 30 days
    MTD = "mtd"
    YTD = "ytd"
    CUSTOM = "custom"
