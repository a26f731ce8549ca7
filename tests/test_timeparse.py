"""Tests for Berlin offsets and the time phrase parser."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from kryten_stars.timeparse import (
    berlin_offset,
    format_berlin,
    format_delay,
    parse_time_input,
    to_berlin_wall,
)

UTC = timezone.utc
NOW = datetime(2026, 7, 1, 10, 0, 0, tzinfo=UTC)  # 12:00 in Berlin (CEST)


# ═══════════════════════════════════════════════════════════════
#  berlin_offset
# ═══════════════════════════════════════════════════════════════

class TestBerlinOffset:
    def test_summer(self):
        assert berlin_offset(datetime(2026, 7, 1, 12, 0, tzinfo=UTC)) == timedelta(hours=2)

    def test_winter(self):
        assert berlin_offset(datetime(2026, 1, 15, 12, 0, tzinfo=UTC)) == timedelta(hours=1)
        assert berlin_offset(datetime(2026, 12, 24, 12, 0, tzinfo=UTC)) == timedelta(hours=1)

    def test_spring_switch_at_0100_utc(self):
        # Last Sunday of March 2026 is the 29th
        assert berlin_offset(datetime(2026, 3, 29, 0, 59, tzinfo=UTC)) == timedelta(hours=1)
        assert berlin_offset(datetime(2026, 3, 29, 1, 0, tzinfo=UTC)) == timedelta(hours=2)

    def test_autumn_switch_at_0100_utc(self):
        # Last Sunday of October 2026 is the 25th
        assert berlin_offset(datetime(2026, 10, 25, 0, 59, tzinfo=UTC)) == timedelta(hours=2)
        assert berlin_offset(datetime(2026, 10, 25, 1, 0, tzinfo=UTC)) == timedelta(hours=1)

    def test_to_berlin_wall(self):
        wall = to_berlin_wall(datetime(2026, 1, 15, 12, 0, tzinfo=UTC))
        assert (wall.hour, wall.minute) == (13, 0)

    def test_format_berlin(self):
        assert format_berlin(NOW) == "01.07.2026 12:00"


# ═══════════════════════════════════════════════════════════════
#  Durations
# ═══════════════════════════════════════════════════════════════

class TestDurations:
    def test_combined_minutes(self):
        parsed = parse_time_input("10m wäsche", NOW)
        assert parsed is not None
        assert parsed.duration.total_seconds() * 1000 == 600_000
        assert parsed.due_at == NOW + timedelta(minutes=10)
        assert parsed.message == "wäsche"
        assert parsed.absolute is False

    def test_summed_with_filler(self):
        parsed = parse_time_input("in 2h 30m tee kochen", NOW)
        assert parsed.duration == timedelta(hours=2, minutes=30)
        assert parsed.message == "tee kochen"

    def test_split_duration(self):
        parsed = parse_time_input(["5", "min", "pizza"], NOW)
        assert parsed.duration == timedelta(minutes=5)
        assert parsed.message == "pizza"

    @pytest.mark.parametrize("phrase,expected", [
        ("30s", timedelta(seconds=30)),
        ("45sec", timedelta(seconds=45)),
        ("2std", timedelta(hours=2)),
        ("3d", timedelta(days=3)),
        ("1w", timedelta(weeks=1)),
        ("1mo", timedelta(days=30)),
        ("1y", timedelta(days=365)),
        ("15min", timedelta(minutes=15)),
    ])
    def test_units(self, phrase, expected):
        parsed = parse_time_input(phrase, NOW)
        assert parsed.duration == expected
        assert parsed.message == ""

    def test_stops_at_first_unknown_token(self):
        parsed = parse_time_input("1h essen in 2h", NOW)
        assert parsed.duration == timedelta(hours=1)
        assert parsed.message == "essen in 2h"

    @pytest.mark.parametrize("phrase", ["hallo welt", "", "0m nix", "in", "99999999999y x", "999999999 d x"])
    def test_not_a_time(self, phrase):
        assert parse_time_input(phrase, NOW) is None


# ═══════════════════════════════════════════════════════════════
#  Clock times and dates
# ═══════════════════════════════════════════════════════════════

class TestAbsolute:
    def test_clock_later_today(self):
        parsed = parse_time_input("um 14:00 meeting", NOW)
        assert parsed.absolute is True
        assert parsed.due_at == datetime(2026, 7, 1, 12, 0, tzinfo=UTC)
        assert parsed.message == "meeting"

    def test_clock_already_past_rolls_to_tomorrow(self):
        parsed = parse_time_input("08:00 aufstehen", NOW)
        assert parsed.due_at == datetime(2026, 7, 2, 6, 0, tzinfo=UTC)

    @pytest.mark.parametrize("phrase", ["20uhr essen", "20 uhr essen", "um 20 uhr essen"])
    def test_uhr(self, phrase):
        parsed = parse_time_input(phrase, NOW)
        assert parsed.due_at == datetime(2026, 7, 1, 18, 0, tzinfo=UTC)
        assert parsed.message == "essen"

    def test_winter_date_uses_target_offset(self):
        parsed = parse_time_input("14.02 11:40 kaffee", NOW)
        # 14.02 is already past this year, so it rolls to 2027 (CET, +1h)
        assert parsed.due_at == datetime(2027, 2, 14, 10, 40, tzinfo=UTC)
        assert parsed.message == "kaffee"

    def test_summer_date_from_winter(self):
        now = datetime(2026, 1, 10, 9, 0, tzinfo=UTC)
        parsed = parse_time_input("01.07. 12:00 urlaub", now)
        assert parsed.due_at == datetime(2026, 7, 1, 10, 0, tzinfo=UTC)

    def test_date_only_defaults_to_midnight(self):
        parsed = parse_time_input("24.12 geschenke", NOW)
        assert parsed.due_at == datetime(2026, 12, 23, 23, 0, tzinfo=UTC)

    def test_today_with_future_time_stays_today(self):
        parsed = parse_time_input("01.07 18:30 sport", NOW)
        assert parsed.due_at == datetime(2026, 7, 1, 16, 30, tzinfo=UTC)

    def test_explicit_year_is_kept(self):
        parsed = parse_time_input("01.01.2020 10:00 damals", NOW)
        assert parsed.due_at == datetime(2020, 1, 1, 9, 0, tzinfo=UTC)

    def test_two_digit_year(self):
        parsed = parse_time_input("05.03.27 kuchen", NOW)
        assert parsed.due_at == datetime(2027, 3, 4, 23, 0, tzinfo=UTC)

    def test_just_after_spring_forward(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        parsed = parse_time_input("29.03 03:30 x", now)
        assert parsed.due_at == datetime(2026, 3, 29, 1, 30, tzinfo=UTC)

    def test_duration_added_to_absolute(self):
        parsed = parse_time_input("um 14:00 30m pause", NOW)
        assert parsed.due_at == datetime(2026, 7, 1, 12, 30, tzinfo=UTC)
        assert parsed.message == "pause"

    def test_invalid_date_is_not_consumed(self):
        assert parse_time_input("31.02 quatsch", NOW) is None

    def test_year_needs_its_own_dot(self):
        assert parse_time_input("5.1230 x", NOW) is None

    def test_trailing_dot_without_year(self):
        parsed = parse_time_input("24.12. geschenke", NOW)
        assert parsed.due_at == datetime(2026, 12, 23, 23, 0, tzinfo=UTC)
        assert parsed.message == "geschenke"


# ═══════════════════════════════════════════════════════════════
#  format_delay
# ═══════════════════════════════════════════════════════════════

def test_format_delay():
    assert format_delay(timedelta(hours=26, minutes=5)) == "1d 2h 5min"
    assert format_delay(timedelta(seconds=45)) == "45s"
    assert format_delay(timedelta(minutes=10)) == "10min"
    assert format_delay(timedelta(seconds=-5)) == "0s"
