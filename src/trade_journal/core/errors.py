"""Custom exception hierarchy for the journal engine."""

from __future__ import annotations

from typing import Any


class JournalError(Exception):
    """Base exception for all journal engine errors."""


# --- Configuration ---
class ConfigError(JournalError):
    """Invalid or missing configuration."""


# --- Position ledger ---
class PositionError(JournalError):
    """Position lifecycle error."""


class InvalidPositionState(PositionError):
    """Event inputs are invalid (non-positive price/size, bad percent).

    Raised before any mutation; retrying with the same arguments fails
    the same way.
    """


class InvalidTransition(PositionError):
    """Event applied to a position that is already CLOSED."""

    def __init__(self, position_id: str, event: str):
        self.position_id = position_id
        self.event = event
        super().__init__(
            f"Cannot apply {event} to closed position {position_id}"
        )


# --- Time ---
class InvalidTimestamp(JournalError, ValueError):
    """Timestamp or timezone could not be parsed."""

    def __init__(self, value: Any, reason: str = ""):
        self.value = value
        msg = f"Invalid timestamp: {value!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


# --- Metrics ---
class UndefinedMetric(JournalError):
    """A ratio whose denominator is structurally zero or absent."""

    def __init__(self, metric: str):
        self.metric = metric
        super().__init__(f"Metric {metric!r} is not applicable")


def require_metric(value: float | None, name: str) -> float:
    """Return *value* or raise :class:`UndefinedMetric` when it is ``None``.

    Computations return ``None`` for "not applicable"; callers that need
    a hard number go through this accessor instead of coercing to 0.
    """
    if value is None:
        raise UndefinedMetric(name)
    return value
