"""Time sources for the journal.

Ledger transitions stamp ``date_open`` / ``date_close`` and history entries
from a clock, and "today" style range presets resolve against one, so no
journal code reads ``datetime.now()`` itself.

WallClock: the host's current UTC time
SimClock: a hand-driven clock for tests, imports and back-filled sessions
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class IClock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware UTC instant."""
        ...


class WallClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SimClock:
    """Clock that only moves when told to.

    Useful for back-filling a journal session: open a position, ``advance``
    by the holding time, close it, and every stamp lands where it would have
    in real time.

    Parameters
    ----------
    start:
        Initial instant.  Must be timezone-aware; it is stored as UTC.
        Defaults to midnight UTC on 2024-01-01.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._time = _as_utc(start or datetime(2024, 1, 1, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._time

    def set_time(self, t: datetime) -> None:
        t = _as_utc(t)
        if t < self._time:
            raise ValueError(f"SimClock cannot move backwards: {t.isoformat()} < {self._time.isoformat()}")
        self._time = t

    def advance(self, **step: float) -> datetime:
        """Move forward by ``timedelta(**step)`` and return the new instant."""
        delta = timedelta(**step)
        if delta < timedelta(0):
            raise ValueError(f"SimClock cannot step by a negative amount: {delta}")
        self._time += delta
        return self._time


def _as_utc(t: datetime) -> datetime:
    if t.tzinfo is None or t.utcoffset() is None:
        raise ValueError(f"SimClock needs a timezone-aware datetime, got naive {t.isoformat()}")
    return t.astimezone(timezone.utc)
