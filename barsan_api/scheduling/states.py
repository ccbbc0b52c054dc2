"""
Reservation lifecycle.

    create ──> confirmed ──cancel──> cancelled
    pending ──confirm──> confirmed ──complete──> completed
                         confirmed ──no_show──> no_show

cancelled, completed and no_show are terminal. The status on a reservation is
only ever changed through `apply`.
"""
import enum
from datetime import date, datetime, time, timedelta

from ..errors import CancellationWindowExpired, Forbidden, InvalidTransition
from ..identity import GUEST, STAFF
from ..utils.time import time_to_minutes


class Status(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class Action(str, enum.Enum):
    CREATE = "create"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"
    NO_SHOW = "no_show"


TERMINAL = frozenset({Status.CANCELLED, Status.COMPLETED, Status.NO_SHOW})
# every reservation except a cancelled one keeps its slot on the table
HOLDS_TABLE = frozenset(Status) - {Status.CANCELLED}

_TRANSITIONS = {
    (None, Action.CREATE): Status.CONFIRMED,
    (Status.PENDING, Action.CONFIRM): Status.CONFIRMED,
    (Status.PENDING, Action.CANCEL): Status.CANCELLED,
    (Status.CONFIRMED, Action.CANCEL): Status.CANCELLED,
    (Status.CONFIRMED, Action.COMPLETE): Status.COMPLETED,
    (Status.CONFIRMED, Action.NO_SHOW): Status.NO_SHOW,
}


def next_status(current: Status | None, action: Action) -> Status:
    try:
        return _TRANSITIONS[(current, action)]
    except KeyError:
        state = current.value if current else "new"
        raise InvalidTransition(f"Cannot {action.value} a {state} reservation.") from None


def starts_at(day: date, start_time: str) -> datetime:
    minutes = time_to_minutes(start_time)
    return datetime.combine(day, time(minutes // 60, minutes % 60))


def apply(reservation, action: Action, actor: str, now: datetime,
          cutoff: timedelta = timedelta(hours=2), reason: str | None = None) -> Status:
    """
    Moves `reservation` along `action` if the transition is legal for `actor`
    at `now`. On any failure the reservation is left untouched.
    """
    current = Status(reservation.status) if reservation.status else None
    target = next_status(current, action)

    if action is not Action.CREATE:
        begins = starts_at(reservation.date, reservation.start_time)
        ends = begins + timedelta(minutes=reservation.duration)

        if action is Action.CANCEL and actor == GUEST and now > begins - cutoff:
            hours = cutoff.total_seconds() / 3600
            raise CancellationWindowExpired(
                f"Reservations can only be cancelled at least {hours:g} hours before they start."
            )
        if action is Action.NO_SHOW:
            if actor != STAFF:
                raise Forbidden("Only staff can mark a no-show.")
            if now < begins:
                raise InvalidTransition("Cannot mark a no-show before the reservation starts.")
        if action is Action.COMPLETE:
            if actor == GUEST:
                raise Forbidden("Only staff can complete a reservation.")
            if now < ends:
                raise InvalidTransition("Cannot complete a reservation that has not taken place.")

    reservation.status = target.value
    if target is Status.CANCELLED:
        reservation.cancellation_reason = reason
        reservation.cancelled_by = actor
    reservation.updated_at = now
    return target
