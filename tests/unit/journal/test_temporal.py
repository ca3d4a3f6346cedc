"""Tests for timezone-correct day bucketing and date ranges."""

from datetime import date, datetime, timedelta, timezone

import pytest

from trade_journal.core.clock import SimClock
from trade_journal.core.enums import RangePreset
from trade_journal.core.errors import InvalidTimestamp
from trade_journal.journal.temporal import (
    DayRange,
    day_key,
    is_same_day,
    local_date,
    minutes_between,
    month_bounds,
    month_key,
    parse_timestamp,
    resolve_range,
    resolve_timezone,
    safe_day_key,
    today,
    week_bounds,
    week_key,
    within_minutes,
)


class TestResolveTimezone:
    def test_none_is_utc(self):
        assert resolve_timezone(None) == timezone.utc

    def test_utc_name(self):
        assert resolve_timezone("UTC") == timezone.utc

    def test_fixed_negative_offset(self):
        tz = resolve_timezone("UTC-5")
        assert tz.utcoffset(None) == timedelta(hours=-5)

    def test_fixed_offset_with_minutes(self):
        tz = resolve_timezone("UTC+05:30")
        assert tz.utcoffset(None) == timedelta(hours=5, minutes=30)

    def test_gmt_prefix(self):
        assert resolve_timezone("GMT+3").utcoffset(None) == timedelta(hours=3)

    def test_iana_name(self):
        tz = resolve_timezone("Europe/Moscow")
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc).astimezone(tz)
        assert ts.utcoffset() == timedelta(hours=3)

    def test_unknown_name_raises(self):
        with pytest.raises(InvalidTimestamp):
            resolve_timezone("Mars/Olympus_Mons")

    def test_offset_out_of_range(self):
        with pytest.raises(InvalidTimestamp):
            resolve_timezone("UTC+15")


class TestParseTimestamp:
    def test_z_suffix(self):
        assert parse_timestamp("2024-01-01T23:30:00Z") == datetime(
            2024, 1, 1, 23, 30, tzinfo=timezone.utc
        )

    def test_naive_datetime_is_utc(self):
        ts = parse_timestamp(datetime(2024, 1, 1, 12, 0))
        assert ts.tzinfo == timezone.utc
        assert ts.hour == 12

    def test_aware_datetime_converted_to_utc(self):
        plus3 = timezone(timedelta(hours=3))
        ts = parse_timestamp(datetime(2024, 1, 1, 12, 0, tzinfo=plus3))
        assert ts == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_date_only_string_is_midnight_utc(self):
        assert parse_timestamp("2024-03-05") == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_date_object(self):
        assert parse_timestamp(date(2024, 2, 29)).day == 29

    @pytest.mark.parametrize("bad", ["", "   ", "yesterday", "2024-13-45", None, True, [1, 2]])
    def test_unparsable(self, bad):
        with pytest.raises(InvalidTimestamp):
            parse_timestamp(bad)

    def test_invalid_timestamp_is_value_error(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a date")


class TestDayKey:
    def test_late_utc_evening_stays_on_same_day_west_of_utc(self):
        assert day_key("2024-01-01T23:30:00Z", "UTC-5") == "2024-01-01"

    def test_utc_default_bucket(self):
        assert day_key("2024-01-01T23:30:00Z") == "2024-01-01"

    def test_rolls_over_east_of_utc(self):
        assert day_key("2024-01-01T23:30:00Z", "UTC+3") == "2024-01-02"

    def test_early_utc_morning_is_previous_day_west(self):
        assert day_key("2024-01-02T02:00:00Z", "America/New_York") == "2024-01-01"

    def test_safe_day_key_returns_none_on_bad_input(self):
        assert safe_day_key("garbage", "UTC") is None
        assert safe_day_key(None, "UTC") is None

    def test_is_same_day_depends_on_timezone(self):
        a = "2024-01-01T20:00:00Z"
        b = "2024-01-02T01:00:00Z"
        assert not is_same_day(a, b, "UTC")
        assert is_same_day(a, b, "UTC-5")

    def test_today_uses_clock_and_timezone(self):
        clock = SimClock(datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc))
        assert today("UTC", clock) == "2024-06-01"
        assert today("UTC-5", clock) == "2024-05-31"

    def test_local_date(self):
        assert local_date("2024-06-30T23:00:00Z", "Europe/Berlin") == date(2024, 7, 1)


class TestWithinMinutes:
    def test_inside_window(self):
        assert within_minutes("2024-01-01T10:20:00Z", "2024-01-01T10:00:00Z", 30)

    def test_window_edge_inclusive(self):
        assert within_minutes("2024-01-01T10:30:00Z", "2024-01-01T10:00:00Z", 30)

    def test_outside_window(self):
        assert not within_minutes("2024-01-01T10:31:00Z", "2024-01-01T10:00:00Z", 30)

    def test_zero_delta_is_not_within(self):
        assert not within_minutes("2024-01-01T10:00:00Z", "2024-01-01T10:00:00Z", 30)

    def test_negative_delta_is_not_within(self):
        assert not within_minutes("2024-01-01T09:59:00Z", "2024-01-01T10:00:00Z", 30)

    def test_minutes_between_signed(self):
        assert minutes_between("2024-01-01T09:00:00Z", "2024-01-01T10:30:00Z") == -90


class TestWeekMonth:
    def test_week_bounds_monday_to_sunday(self):
        start, end = week_bounds(date(2024, 1, 3))  # Wednesday
        assert start == date(2024, 1, 1)
        assert end == date(2024, 1, 7)

    def test_month_bounds_leap_february(self):
        assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_month_bounds_december(self):
        assert month_bounds(date(2023, 12, 31)) == (date(2023, 12, 1), date(2023, 12, 31))

    def test_week_key_in_timezone(self):
        # Sunday 23:30 UTC is already Monday in UTC+3
        assert week_key("2024-01-07T23:30:00Z", "UTC") == "2024-01-01"
        assert week_key("2024-01-07T23:30:00Z", "UTC+3") == "2024-01-08"

    def test_month_key(self):
        assert month_key("2024-01-31T23:30:00Z", "UTC+1") == "2024-02"


class TestResolveRange:
    @pytest.fixture
    def clock(self):
        return SimClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))

    def test_all_is_unbounded(self, clock):
        rng = resolve_range(RangePreset.ALL, clock=clock)
        assert rng == DayRange()
        assert rng.contains(date(1999, 1, 1))

    def test_today(self, clock):
        rng = resolve_range("today", clock=clock)
        assert rng == DayRange(date(2024, 3, 15), date(2024, 3, 15))

    def test_week_is_rolling_seven_days(self, clock):
        rng = resolve_range(RangePreset.WEEK, clock=clock)
        assert rng.start == date(2024, 3, 8)
        assert rng.end == date(2024, 3, 15)

    def test_month_is_rolling_thirty_days(self, clock):
        assert resolve_range(RangePreset.MONTH, clock=clock).start == date(2024, 2, 14)

    def test_mtd(self, clock):
        assert resolve_range(RangePreset.MTD, clock=clock).start == date(2024, 3, 1)

    def test_ytd(self, clock):
        assert resolve_range(RangePreset.YTD, clock=clock).start == date(2024, 1, 1)

    def test_today_follows_user_timezone(self):
        clock = SimClock(datetime(2024, 3, 15, 2, 0, tzinfo=timezone.utc))
        rng = resolve_range(RangePreset.TODAY, tz="UTC-5", clock=clock)
        assert rng.start == date(2024, 3, 14)

    def test_custom_bare_dates_not_shifted(self):
        rng = resolve_range(
            RangePreset.CUSTOM, tz="UTC-5", date_from="2024-01-01", date_to="2024-01-31"
        )
        assert rng == DayRange(date(2024, 1, 1), date(2024, 1, 31))

    def test_custom_open_ended(self):
        rng = resolve_range(RangePreset.CUSTOM, date_from=date(2024, 1, 10))
        assert rng.end is None
        assert rng.contains(date(2030, 1, 1))
        assert not rng.contains(date(2024, 1, 9))

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            resolve_range("fortnight")
