"""Timezone-correct calendar bucketing.

Every "which day did this happen on" question in the journal goes
through here.  Day keys are ``YYYY-MM-DD`` strings in the user's
timezone, never the host's local zone, and never UTC unless UTC is
what the user picked.

Timezones may be IANA names (``"Europe/Moscow"``) or fixed offsets
(``"UTC-5"``, ``"UTC+05:30"``, ``"GMT+3"``).  Timestamps may be aware or
naive datetimes (naive = UTC), dates, epoch seconds, or ISO-8601
strings; a bare ``YYYY-MM-DD`` string means midnight UTC.

Usage::

    day_key("2024-01-01T23:30:00Z", "UTC-5")   # "2024-01-01"
    within_minutes(open_ts, loss_close_ts, 30)
    rng = resolve_range(RangePreset.MTD, tz="Europe/London", clock=clock)
    rng.contains(local_date(ts, "Europe/London"))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from trade_journal.core.clock import IClock, WallClock
from trade_journal.core.enums import RangePreset
from trade_journal.core.errors import InvalidTimestamp

logger = logging.getLogger(__name__)

TimestampLike = Union[datetime, date, str, int, float]

_OFFSET_RE = re.compile(
    r"^(?:UTC|GMT)\s*(?P<sign>[+-])\s*(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$",
    re.IGNORECASE,
)
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def _resolve_timezone_name(name: str) -> tzinfo:
    key = name.strip()
    if key.upper() in ("", "UTC", "GMT", "Z"):
        return timezone.utc

    m = _OFFSET_RE.match(key)
    if m:
        hours = int(m.group("hours"))
        minutes = int(m.group("minutes") or 0)
        if hours > 14 or minutes >= 60:
            raise InvalidTimestamp(name, "offset out of range")
        delta = timedelta(hours=hours, minutes=minutes)
        if m.group("sign") == "-":
            delta = -delta
        return timezone(delta, name=key.upper())

    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimestamp(name, "unknown timezone") from exc


def resolve_timezone(tz: str | tzinfo | None) -> tzinfo:
    """Turn a timezone name into a ``tzinfo``.

    ``None`` means UTC, so "today" is UTC-today, not local-today.

    Raises:
        InvalidTimestamp: for names that are neither IANA nor ``UTC±H``.
    """
    if tz is None:
        return timezone.utc
    if isinstance(tz, tzinfo):
        return tz
    return _resolve_timezone_name(str(tz))


def parse_timestamp(value: TimestampLike | None) -> datetime:
    """Parse *value* into an aware UTC datetime.

    Raises:
        InvalidTimestamp: when *value* is empty or cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        raise InvalidTimestamp(value, "missing")

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidTimestamp(value, "epoch out of range") from exc
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidTimestamp(value, "empty")
        if _DATE_ONLY_RE.match(text):
            text = f"{text}T00:00:00"
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidTimestamp(value) from exc
    else:
        raise InvalidTimestamp(value, f"unsupported type {type(value).__name__}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Day keys
# ---------------------------------------------------------------------------

def local_date(ts: TimestampLike, tz: str | tzinfo | None = "UTC") -> date:
    """Calendar date of *ts* as observed in *tz*."""
    return parse_timestamp(ts).astimezone(resolve_timezone(tz)).date()


def day_key(ts: TimestampLike, tz: str | tzinfo | None = "UTC") -> str:
    """``YYYY-MM-DD`` of *ts* in *tz*."""
    return local_date(ts, tz).isoformat()


def safe_day_key(ts: TimestampLike | None, tz: str | tzinfo | None = "UTC") -> str | None:
    """Like :func:`day_key` but returns ``None`` for unparsable input.

    Aggregates use this so a single bad record is excluded from its
    bucket instead of blanking the report (and never lands in "today").
    """
    try:
        return day_key(ts, tz)  # type: ignore[arg-type]
    except InvalidTimestamp as exc:
        logger.warning("Excluding record from day bucket: %s", exc)
        return None


def today(tz: str | tzinfo | None = "UTC", clock: IClock | None = None) -> str:
    """Today's day key in *tz*."""
    now = (clock or WallClock()).now()
    return day_key(now, tz)


def is_same_day(
    ts_a: TimestampLike,
    ts_b: TimestampLike,
    tz: str | tzinfo | None = "UTC",
) -> bool:
    return local_date(ts_a, tz) == local_date(ts_b, tz)


def minutes_between(later: TimestampLike, earlier: TimestampLike) -> float:
    """Signed minutes from *earlier* to *later*."""
    delta = parse_timestamp(later) - parse_timestamp(earlier)
    return delta.total_seconds() / 60.0


def within_minutes(
    later: TimestampLike,
    earlier: TimestampLike,
    max_minutes: float,
) -> bool:
    """True iff ``0 < later - earlier <= max_minutes``."""
    delta = minutes_between(later, earlier)
    return 0 < delta <= max_minutes


# ---------------------------------------------------------------------------
# Week / month boundaries
# ---------------------------------------------------------------------------

def week_bounds(day: date) -> tuple[date, date]:
    """Monday..Sunday week containing *day*."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def month_bounds(day: date) -> tuple[date, date]:
    """First..last calendar day of the month containing *day*."""
    start = day.replace(day=1)
    if start.month == 12:
        nxt = start.replace(year=start.year + 1, month=1)
    else:
        nxt = start.replace(month=start.month + 1)
    return start, nxt - timedelta(days=1)


def week_key(ts: TimestampLike, tz: str | tzinfo | None = "UTC") -> str:
    """Day key of the Monday starting the week of *ts* in *tz*."""
    return week_bounds(local_date(ts, tz))[0].isoformat()


def month_key(ts: TimestampLike, tz: str | tzinfo | None = "UTC") -> str:
    """``YYYY-MM`` of *ts* in *tz*."""
    return local_date(ts, tz).strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Date ranges
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DayRange:
    """Inclusive calendar-day range; ``None`` bounds are open."""

    start: date | None = None
    end: date | None = None

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


def resolve_range(
    preset: RangePreset | str = RangePreset.ALL,
    *,
    tz: str | tzinfo | None = "UTC",
    clock: IClock | None = None,
    date_from: TimestampLike | None = None,
    date_to: TimestampLike | None = None,
) -> DayRange:
    """Resolve a range preset into day bounds in the user's timezone.

    ``week`` and ``month`` are rolling (7 / 30 days back from today);
    ``mtd`` / ``ytd`` start at the calendar month / year.  ``custom``
    uses *date_from* / *date_to* (either may be omitted); custom bounds
    given as bare dates are taken as-is, not shifted by *tz*.
    """
    preset = RangePreset(preset)
    if preset is RangePreset.ALL:
        return DayRange()

    if preset is RangePreset.CUSTOM:
        return DayRange(
            start=_bound_date(date_from, tz),
            end=_bound_date(date_to, tz),
        )

    now_day = local_date((clock or WallClock()).now(), tz)
    if preset is RangePreset.TODAY:
        start = now_day
    elif preset is RangePreset.WEEK:
        start = now_day - timedelta(days=7)
    elif preset is RangePreset.MONTH:
        start = now_day - timedelta(days=30)
    elif preset is RangePreset.MTD:
        start = now_day.replace(day=1)
    else:  # YTD
        start = now_day.replace(month=1, day=1)
    return DayRange(start=start, end=now_day)


def _bound_date(value: TimestampLike | None, tz: str | tzinfo | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and _DATE_ONLY_RE.match(value.strip()):
        return date.fromisoformat(value.strip())
    return local_date(value, tz)
