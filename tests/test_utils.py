"""Unit tests for duration arithmetic and calendar helpers, no database needed."""

import re
from datetime import date, datetime, timedelta, timezone

import pytest

from tasktimer.utils import (
    compute_duration_minutes,
    end_of_day,
    format_duration,
    parse_date_range,
    parse_datetime,
    start_of_week,
    week_bounds,
)


START = datetime(2024, 5, 15, 9, 0)


# ---- compute_duration_minutes ----

class TestComputeDurationMinutes:
    def test_whole_minutes(self):
        assert compute_duration_minutes(START, START + timedelta(minutes=90)) == 90

    def test_zero_length(self):
        assert compute_duration_minutes(START, START) == 0

    def test_half_minute_rounds_up(self):
        assert compute_duration_minutes(START, START + timedelta(seconds=30)) == 1

    def test_just_under_half_minute_rounds_down(self):
        assert compute_duration_minutes(START, START + timedelta(seconds=29, milliseconds=999)) == 0

    def test_rounds_to_nearest(self):
        assert compute_duration_minutes(START, START + timedelta(minutes=2, seconds=31)) == 3
        assert compute_duration_minutes(START, START + timedelta(minutes=2, seconds=29)) == 2

    def test_halves_always_round_up(self):
        """2.5 minutes is 3, not the banker's-rounding 2."""
        assert compute_duration_minutes(START, START + timedelta(minutes=2, seconds=30)) == 3

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            compute_duration_minutes(START, START - timedelta(minutes=1))


# ---- format_duration ----

class TestFormatDuration:
    def test_zero(self):
        assert format_duration(0) == "0:00"

    def test_none(self):
        assert format_duration(None) == "0:00"

    def test_hour_and_a_half(self):
        assert format_duration(90) == "1:30"

    def test_under_an_hour(self):
        assert format_duration(59) == "0:59"

    def test_minutes_are_zero_padded(self):
        assert format_duration(61) == "1:01"

    def test_many_hours(self):
        assert format_duration(25 * 60 + 7) == "25:07"

    def test_shape_and_value_for_all_counts(self):
        for minutes in range(0, 3000):
            text = format_duration(minutes)
            assert re.match(r"^\d+:\d{2}$", text)
            hours, mins = (int(part) for part in text.split(":"))
            assert mins < 60
            assert hours * 60 + mins == minutes


# ---- calendar helpers ----

class TestWeekBoundaries:
    def test_midweek_goes_back_to_sunday(self):
        assert start_of_week(datetime(2024, 5, 15, 17, 45)) == datetime(2024, 5, 12)

    def test_sunday_is_its_own_week_start(self):
        assert start_of_week(datetime(2024, 5, 12, 0, 0)) == datetime(2024, 5, 12)

    def test_saturday_belongs_to_previous_sunday(self):
        assert start_of_week(date(2024, 5, 18)) == datetime(2024, 5, 12)

    def test_bounds_are_inclusive_of_the_last_instant(self):
        first, last = week_bounds(datetime(2024, 5, 15))
        assert first == datetime(2024, 5, 12)
        assert last == end_of_day(date(2024, 5, 18))
        assert last.hour == 23 and last.minute == 59 and last.second == 59


# ---- lenient parsing ----

class TestParseDatetime:
    def test_iso_string(self):
        assert parse_datetime("2024-05-15T09:30:00") == datetime(2024, 5, 15, 9, 30)

    def test_date_only_is_midnight(self):
        assert parse_datetime("2024-05-15") == datetime(2024, 5, 15)

    def test_utc_suffix_becomes_local_naive(self):
        parsed = parse_datetime("2024-05-15T09:30:00Z")
        expected = datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert parsed == expected
        assert parsed.tzinfo is None

    def test_garbage_is_none(self):
        assert parse_datetime("not a date") is None

    def test_empty_is_none(self):
        assert parse_datetime("") is None
        assert parse_datetime(None) is None


class TestParseDateRange:
    def test_both_bounds(self):
        assert parse_date_range("2024-05-01T00:00", "2024-05-02T12:00") == (
            datetime(2024, 5, 1),
            datetime(2024, 5, 2, 12),
        )

    def test_date_only_end_covers_whole_day(self):
        start, end = parse_date_range("2024-05-01", "2024-05-02")
        assert start == datetime(2024, 5, 1)
        assert end == end_of_day(date(2024, 5, 2))

    def test_missing_bound_means_no_filter(self):
        assert parse_date_range("2024-05-01", None) is None
        assert parse_date_range(None, "2024-05-01") is None

    def test_malformed_bound_is_ignored(self):
        assert parse_date_range("yesterday", "2024-05-01") is None
