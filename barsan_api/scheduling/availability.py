"""
Conflict rule for a single table on a single date.

Pure functions only: callers pass reservations that are already filtered to
one table, one date and non-cancelled statuses.
"""
from typing import Iterable, NamedTuple

from ..utils.time import intervals_overlap, minutes_to_time, time_to_minutes


class Slot(NamedTuple):
    start: int  # minutes since midnight
    duration: int

    @classmethod
    def at(cls, time: str, duration: int) -> "Slot":
        return cls(time_to_minutes(time), duration)

    @property
    def end(self) -> int:
        return self.start + self.duration


def is_available(candidate: Slot, existing: Iterable[Slot]) -> bool:
    return not any(
        intervals_overlap(candidate.start, candidate.duration, other.start, other.duration)
        for other in existing
    )


def free_start_times(open_time: str, close_time: str, duration: int,
                     existing: Iterable[Slot], step: int = 30) -> list[str]:
    """Start times between opening and closing at which a slot of `duration` fits."""
    existing = list(existing)
    opens, closes = time_to_minutes(open_time), time_to_minutes(close_time)
    times = []
    start = opens
    while start + duration <= closes:
        if is_available(Slot(start, duration), existing):
            times.append(minutes_to_time(start))
        start += step
    return times
