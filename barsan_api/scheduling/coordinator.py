"""
Booking coordinator: the only code path that creates reservations or changes
their status.

Every check-then-write on a table runs inside a critical section keyed by
``(table_id, date)``:

    acquire -> load active reservations -> check -> write -> release

so two requests for the same table and date can never both read "free"
before either has written. Requests for other tables or dates run in
parallel. Notifications go out after the section is released and cannot
fail the operation.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import NamedTuple

from ..errors import Forbidden, InvalidRequest, InvalidTransition, NotFound, SlotUnavailable
from ..identity import GUEST, SYSTEM_IDENTITY, Identity
from ..utils.time import DayRollover, InvalidFormat, add_minutes, time_to_minutes
from .availability import Slot, free_start_times, is_available
from .locks import KeyedLock
from .states import Action, apply, starts_at

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Contact:
    name: str
    email: str
    phone: str | None = None
    special_requests: str | None = None


class Availability(NamedTuple):
    available: bool
    alternatives: list[str]


class BookingCoordinator:

    def __init__(self, store, notifier=None, locks: KeyedLock | None = None, clock=datetime.now,
                 cancellation_cutoff: timedelta = timedelta(hours=2),
                 slot_step: int = 30, max_duration: int = 360, max_party_size: int = 20):
        self.store = store
        self.notifier = notifier
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.cancellation_cutoff = cancellation_cutoff
        self.slot_step = slot_step
        self.max_duration = max_duration
        self.max_party_size = max_party_size

    @classmethod
    def from_config(cls, config, store, notifier=None) -> "BookingCoordinator":
        return cls(
            store,
            notifier=notifier,
            cancellation_cutoff=timedelta(hours=config["CANCELLATION_CUTOFF_HOURS"]),
            slot_step=config["SLOT_STEP_MINUTES"],
            max_duration=config["MAX_DURATION_MINUTES"],
            max_party_size=config["MAX_PARTY_SIZE"],
        )

    def book(self, table_id: int, day: date, start_time: str, duration: int, party_size: int,
             actor: Identity, contact: Contact):
        now = self.clock()
        table = self._validate(table_id, day, start_time, duration, party_size, now)
        if actor.is_staff:
            self._require_scope(actor, table.cafe_id)
        elif actor.kind != GUEST:
            raise Forbidden("Only guests and staff can book tables.")

        candidate = Slot.at(start_time, duration)
        with self.locks.hold((table.id, day)):
            try:
                existing = [r.slot for r in self.store.list_active(table.id, day, lock=True)]
                if not is_available(candidate, existing):
                    alternatives = self._alternatives(table, day, duration, existing, now)
                    raise SlotUnavailable("Table is already booked for this time.", alternatives)

                reservation = self.store.new_reservation(
                    table_id=table.id,
                    user_id=actor.id if actor.kind == GUEST else None,
                    date=day,
                    start_time=start_time,
                    duration=duration,
                    party_size=party_size,
                    status=None,
                    guest_name=contact.name,
                    guest_email=contact.email,
                    guest_phone=contact.phone,
                    special_requests=contact.special_requests,
                )
                apply(reservation, Action.CREATE, actor.kind, now)
                self.store.insert(reservation)
            except Exception:
                self.store.rollback()
                raise

        logger.info("Booked %s: table %s on %s %s+%dmin for %d",
                    reservation.code, table.id, day, start_time, duration, party_size)
        self._notify("send_confirmation", reservation, table)
        return reservation

    def check_availability(self, table_id: int, day: date, start_time: str, duration: int,
                           party_size: int | None = None) -> Availability:
        now = self.clock()
        table = self._validate(table_id, day, start_time, duration, party_size, now)
        existing = [r.slot for r in self.store.list_active(table.id, day)]
        if is_available(Slot.at(start_time, duration), existing):
            return Availability(True, [])
        return Availability(False, self._alternatives(table, day, duration, existing, now))

    def cancel(self, reservation_id: int, actor: Identity, reason: str | None = None):
        reservation, table = self._transition(reservation_id, Action.CANCEL, actor, reason)
        self._notify("send_cancellation", reservation, table)
        return reservation

    def mark_completed(self, reservation_id: int, actor: Identity):
        return self._transition(reservation_id, Action.COMPLETE, actor)[0]

    def mark_no_show(self, reservation_id: int, actor: Identity):
        return self._transition(reservation_id, Action.NO_SHOW, actor)[0]

    def complete_elapsed(self) -> int:
        """Completes confirmed reservations whose slot has ended. Returns how many."""
        now = self.clock()
        done = 0
        for reservation in self.store.list_elapsed(now):
            ends = starts_at(reservation.date, reservation.start_time) + timedelta(minutes=reservation.duration)
            if ends > now:
                continue
            try:
                self._transition(reservation.id, Action.COMPLETE, SYSTEM_IDENTITY)
            except InvalidTransition:
                # changed by staff after the listing was read
                logger.info("Skipped completing reservation %s", reservation.id)
                continue
            done += 1
        return done

    def _transition(self, reservation_id: int, action: Action, actor: Identity, reason: str | None = None):
        reservation = self.store.get(reservation_id)
        if reservation is None:
            raise NotFound("Reservation not found.")
        table = self.store.get_table(reservation.table_id)
        if actor.kind == GUEST:
            if reservation.user_id != actor.id:
                raise NotFound("Reservation not found.")
        else:
            self._require_scope(actor, table.cafe_id)

        with self.locks.hold((reservation.table_id, reservation.date)):
            try:
                reservation = self.store.get(reservation_id, lock=True)
                previous = reservation.status
                apply(reservation, action, actor.kind, self.clock(),
                      cutoff=self.cancellation_cutoff, reason=reason)
                self.store.save(reservation)
            except InvalidTransition:
                self.store.rollback()
                logger.warning("Rejected %s on reservation %s by %s", action.value, reservation_id, actor.kind)
                raise
            except Exception:
                self.store.rollback()
                raise

        logger.info("Reservation %s: %s -> %s by %s", reservation.code, previous, reservation.status, actor.kind)
        return reservation, table

    def _validate(self, table_id, day, start_time, duration, party_size, now):
        try:
            start = time_to_minutes(start_time)
        except InvalidFormat as e:
            raise InvalidRequest(str(e)) from None
        if not isinstance(duration, int) or duration <= 0 or duration > self.max_duration:
            raise InvalidRequest(f"Duration must be between 1 and {self.max_duration} minutes.")
        if party_size is not None and not 0 < party_size <= self.max_party_size:
            raise InvalidRequest(f"Party size must be between 1 and {self.max_party_size}.")

        table = self.store.get_table(table_id)
        if table is None:
            raise NotFound("Table not found.")
        if not table.is_active:
            raise InvalidRequest("Table is not available for reservations.")
        if party_size is not None and party_size > table.capacity:
            raise InvalidRequest(f"Table seats at most {table.capacity} guests.")

        cafe = table.cafe
        try:
            add_minutes(start_time, duration)
        except DayRollover:
            raise InvalidRequest("Reservations cannot run past midnight.") from None
        if start < time_to_minutes(cafe.open_time) or start + duration > time_to_minutes(cafe.close_time):
            raise InvalidRequest(
                f"{cafe.name} takes reservations between {cafe.open_time} and {cafe.close_time}."
            )
        if starts_at(day, start_time) < now:
            raise InvalidRequest("Reservation time must be in the future.")
        return table

    def _alternatives(self, table, day, duration, existing, now) -> list[str]:
        cafe = table.cafe
        times = free_start_times(cafe.open_time, cafe.close_time, duration, existing, self.slot_step)
        return [t for t in times if starts_at(day, t) >= now]

    @staticmethod
    def _require_scope(actor: Identity, cafe_id: int):
        if not actor.can_manage(cafe_id):
            raise Forbidden("Not allowed to manage reservations at this cafe.")

    def _notify(self, method: str, reservation, table):
        if self.notifier is None:
            return
        payload = {
            "reservation_code": reservation.code,
            "guest_name": reservation.guest_name,
            "guest_email": reservation.guest_email,
            "cafe_name": table.cafe.name,
            "date": reservation.date.isoformat(),
            "time": reservation.start_time,
            "party_size": reservation.party_size,
        }
        try:
            getattr(self.notifier, method)(payload)
        except Exception:
            logger.exception("Notification %s failed for %s", method, reservation.code)
