"""
Slot computation: turn quiet hours + daily frequency into concrete UTC send instants.
Pure functions; the local offset is re-derived for every calendar day (DST safe).
"""
from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.errors import InvalidPreferences

MINUTES_PER_DAY = 24 * 60
MIN_FREQUENCY = 1
MAX_FREQUENCY = 4

# HH:MM (24-hour); a trailing :SS is accepted because Postgres renders TIME that way
TIME_OF_DAY_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$")


def parse_time_of_day(value: str | time) -> time:
    """Parse 'HH:MM' into a time. Raises InvalidPreferences on malformed input."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise InvalidPreferences("Time of day must be in HH:MM format (24-hour)")
    m = TIME_OF_DAY_RE.match(value.strip())
    if not m:
        raise InvalidPreferences(f"Invalid time of day: {value!r}; expected HH:MM (24-hour)")
    return time(int(m.group(1)), int(m.group(2)))


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def resolve_zone(name: str | None) -> ZoneInfo:
    """IANA zone for a user. Raises InvalidPreferences for unknown names."""
    try:
        return ZoneInfo((name or "UTC").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidPreferences(f"Unknown timezone: {name!r}") from e


def validate_frequency(frequency: int) -> int:
    if isinstance(frequency, bool) or not isinstance(frequency, int):
        raise InvalidPreferences("Frequency must be an integer between 1 and 4")
    if not MIN_FREQUENCY <= frequency <= MAX_FREQUENCY:
        raise InvalidPreferences("Frequency must be a number between 1 and 4")
    return frequency


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def allowed_window(quiet_start: time, quiet_end: time) -> tuple[int, int]:
    """
    Complement of [quiet_start, quiet_end) as (start minute, duration in minutes).
    The window opens at quiet_end and may run past midnight; equal bounds mean no quiet hours.
    """
    start = _minutes(quiet_end)
    duration = (_minutes(quiet_start) - start) % MINUTES_PER_DAY
    if duration == 0:
        duration = MINUTES_PER_DAY
    return start, duration


def daily_offsets(quiet_start: time, quiet_end: time, frequency: int) -> list[float]:
    """Minutes after local midnight for each slot: centre of each of `frequency` equal buckets."""
    validate_frequency(frequency)
    start, duration = allowed_window(quiet_start, quiet_end)
    width = duration / frequency
    return [start + (i + 0.5) * width for i in range(frequency)]


def local_to_utc(day, minutes: float, zone: ZoneInfo) -> datetime:
    """Wall-clock `minutes` after midnight of `day` in `zone`, as a UTC instant."""
    naive = datetime.combine(day, time()) + timedelta(seconds=round(minutes * 60))
    return naive.replace(tzinfo=zone).astimezone(timezone.utc)


def compute_slots(
    zone: ZoneInfo,
    quiet_start: time,
    quiet_end: time,
    frequency: int,
    window_start: datetime,
    window_end: datetime,
) -> list[datetime]:
    """
    All slot instants in [window_start, window_end), ascending, in UTC.
    Days are walked in the user's zone; a window opening on the previous local day may spill
    past midnight, so the walk starts one day early.
    """
    offsets = daily_offsets(quiet_start, quiet_end, frequency)
    if window_end <= window_start:
        return []
    day = window_start.astimezone(zone).date() - timedelta(days=1)
    last_day = window_end.astimezone(zone).date()
    out: set[datetime] = set()
    while day <= last_day:
        for offset in offsets:
            instant = local_to_utc(day, offset, zone)
            if window_start <= instant < window_end:
                out.add(instant)
        day += timedelta(days=1)
    return sorted(out)


def is_quiet(local_time: time, quiet_start: time, quiet_end: time) -> bool:
    """True if a local time-of-day falls inside [quiet_start, quiet_end), wrapping past midnight."""
    t, qs, qe = _minutes(local_time), _minutes(quiet_start), _minutes(quiet_end)
    if qs == qe:
        return False
    if qs < qe:
        return qs <= t < qe
    return t >= qs or t < qe


def quiet_period_minutes(quiet_start: time, quiet_end: time) -> int:
    _, allowed = allowed_window(quiet_start, quiet_end)
    return MINUTES_PER_DAY - allowed
