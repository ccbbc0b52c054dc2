import re
from datetime import datetime, timezone

TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
MINUTES_PER_DAY = 24 * 60


class InvalidFormat(ValueError):
    pass


class DayRollover(ValueError):
    pass


def is_valid_time(s: str) -> bool:
    return isinstance(s, str) and TIME_RE.match(s) is not None


def time_to_minutes(s: str) -> int:
    """Converts a 24-hour 'HH:MM' string to minutes since midnight."""
    if not is_valid_time(s):
        raise InvalidFormat(f"Invalid time {s!r}, expected HH:MM (24-hour).")
    hours, minutes = s.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    """Formats minutes since midnight as zero-padded 'HH:MM'."""
    if not 0 <= total < MINUTES_PER_DAY:
        raise DayRollover(f"{total} minutes is outside a single day.")
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(s: str, minutes: int) -> str:
    """
    Adds minutes to an 'HH:MM' time. Results that would cross midnight in
    either direction are rejected with DayRollover instead of wrapping.
    """
    return minutes_to_time(time_to_minutes(s) + minutes)


def intervals_overlap(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open [s, s+d) overlap; back-to-back intervals do not overlap."""
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def to_utc(dt: datetime) -> datetime:
    """Converts a naive datetime to a timezone-aware UTC datetime."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def api_iso_z(dt: datetime) -> str:
    """Formats a datetime into an ISO 8601 string ending in 'Z' for API responses."""
    return to_utc(dt).astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
