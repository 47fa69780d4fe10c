"""Unit tests for slot computation (quiet hours, frequency, timezone / DST)."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from app.core.errors import InvalidPreferences
from app.services.slots import (
    allowed_window,
    compute_slots,
    daily_offsets,
    format_time_of_day,
    is_quiet,
    parse_time_of_day,
    quiet_period_minutes,
    resolve_zone,
    validate_frequency,
)

UTC = ZoneInfo("UTC")


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_allowed_window_overnight_quiet_hours():
    assert allowed_window(time(22, 0), time(8, 0)) == (8 * 60, 14 * 60)


def test_allowed_window_equal_bounds_is_full_day():
    assert allowed_window(time(0, 0), time(0, 0)) == (0, 24 * 60)


def test_daily_offsets_frequency_one_is_window_midpoint():
    assert daily_offsets(time(22, 0), time(8, 0), 1) == [15 * 60]


def test_daily_offsets_frequency_four_centres_each_bucket():
    # 14h window split into 3.5h buckets: 09:45, 13:15, 16:45, 20:15
    assert daily_offsets(time(22, 0), time(8, 0), 4) == [585, 795, 1005, 1215]


def test_compute_slots_scenario_defaults_utc():
    slots = compute_slots(UTC, time(22, 0), time(8, 0), 2, _utc(2026, 3, 2), _utc(2026, 3, 9))
    assert len(slots) == 14
    assert slots == sorted(slots)
    assert slots[0] == _utc(2026, 3, 2, 11, 30)
    assert slots[1] == _utc(2026, 3, 2, 18, 30)
    for s in slots:
        assert time(8, 0) <= s.time() < time(22, 0)


@pytest.mark.parametrize("frequency", [1, 4])
def test_compute_slots_frequency_boundaries(frequency):
    slots = compute_slots(UTC, time(22, 0), time(8, 0), frequency, _utc(2026, 3, 2), _utc(2026, 3, 5))
    assert len(slots) == 3 * frequency
    assert len(set(slots)) == len(slots)


def test_compute_slots_daytime_quiet_window_wraps_past_midnight():
    # Quiet 09:00-17:00: allowed 17:00 -> 09:00 next day, slots at 21:00 and 05:00
    slots = compute_slots(UTC, time(9, 0), time(17, 0), 2, _utc(2026, 3, 2), _utc(2026, 3, 4))
    assert slots == [
        _utc(2026, 3, 2, 5, 0),
        _utc(2026, 3, 2, 21, 0),
        _utc(2026, 3, 3, 5, 0),
        _utc(2026, 3, 3, 21, 0),
    ]
    for s in slots:
        assert not is_quiet(s.time(), time(9, 0), time(17, 0))


def test_compute_slots_respects_local_wall_time_across_dst():
    ny = ZoneInfo("America/New_York")
    # DST starts 2026-03-08 in New York: EST (-5) -> EDT (-4)
    slots = compute_slots(ny, time(22, 0), time(8, 0), 2, _utc(2026, 3, 7), _utc(2026, 3, 10))
    assert slots == [
        _utc(2026, 3, 7, 16, 30),
        _utc(2026, 3, 7, 23, 30),
        _utc(2026, 3, 8, 15, 30),
        _utc(2026, 3, 8, 22, 30),
        _utc(2026, 3, 9, 15, 30),
        _utc(2026, 3, 9, 22, 30),
    ]
    for s in slots:
        assert s.astimezone(ny).time() in (time(11, 30), time(18, 30))


def test_compute_slots_empty_window():
    assert compute_slots(UTC, time(22, 0), time(8, 0), 2, _utc(2026, 3, 2), _utc(2026, 3, 2)) == []


def test_compute_slots_half_open_window():
    slots = compute_slots(UTC, time(22, 0), time(8, 0), 2, _utc(2026, 3, 2, 11, 30), _utc(2026, 3, 2, 18, 30))
    assert slots == [_utc(2026, 3, 2, 11, 30)]


@pytest.mark.parametrize("value,expected", [("08:00", time(8, 0)), ("8:05", time(8, 5)), ("22:00:00", time(22, 0))])
def test_parse_time_of_day_valid(value, expected):
    assert parse_time_of_day(value) == expected


@pytest.mark.parametrize("value", ["24:00", "12:60", "8am", "", "noon", None])
def test_parse_time_of_day_invalid(value):
    with pytest.raises(InvalidPreferences):
        parse_time_of_day(value)


def test_format_time_of_day():
    assert format_time_of_day(time(7, 5)) == "07:05"


@pytest.mark.parametrize("frequency", [0, 5, -1, True, "2"])
def test_validate_frequency_rejects_out_of_range(frequency):
    with pytest.raises(InvalidPreferences):
        validate_frequency(frequency)


def test_resolve_zone_unknown():
    with pytest.raises(InvalidPreferences):
        resolve_zone("Mars/Olympus_Mons")


def test_resolve_zone_defaults_to_utc():
    assert resolve_zone(None) == UTC


def test_is_quiet_wraps_midnight():
    assert is_quiet(time(23, 0), time(22, 0), time(8, 0))
    assert is_quiet(time(7, 59), time(22, 0), time(8, 0))
    assert not is_quiet(time(8, 0), time(22, 0), time(8, 0))
    assert not is_quiet(time(3, 0), time(0, 0), time(0, 0))


def test_quiet_period_minutes():
    assert quiet_period_minutes(time(22, 0), time(8, 0)) == 10 * 60
    assert quiet_period_minutes(time(20, 0), time(12, 0)) == 16 * 60
