import logging
from datetime import date, datetime

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import SlotUnavailable, StorageError
from ..extensions import db
from ..models import Cafe, CafeTable, Reservation
from ..utils.codes import reservation_code
from .availability import is_available
from .states import HOLDS_TABLE, Status

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5
_HOLDING = [s.value for s in HOLDS_TABLE]


class ReservationStore:
    """
    SQLAlchemy persistence for the booking coordinator.

    Reads made inside the coordinator's critical section lock the table row
    with SELECT ... FOR UPDATE, which serializes bookings across processes on
    databases that support it. SQLite ignores the clause.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def new_reservation(self, **fields) -> Reservation:
        return Reservation(**fields)

    def get_table(self, table_id: int) -> CafeTable | None:
        return self._read(lambda: self.session.get(CafeTable, table_id))

    def get_cafe(self, cafe_id: int) -> Cafe | None:
        return self._read(lambda: self.session.get(Cafe, cafe_id))

    def get(self, reservation_id: int, lock: bool = False) -> Reservation | None:
        """With `lock`, re-reads the row from the database and holds it for update."""
        if lock:
            return self._read(lambda: self.session.get(
                Reservation, reservation_id, populate_existing=True, with_for_update=True
            ))
        return self._read(lambda: self.session.get(Reservation, reservation_id))

    def get_by_code(self, code: str) -> Reservation | None:
        return self._read(lambda: self.session.execute(
            select(Reservation).where(Reservation.code == code)
        ).scalar_one_or_none())

    def list_active(self, table_id: int, day: date, lock: bool = False) -> list[Reservation]:
        """Non-cancelled reservations still holding `table_id` on `day`."""
        def query():
            if lock:
                self.session.execute(
                    select(CafeTable.id).where(CafeTable.id == table_id).with_for_update()
                )
            return list(self.session.execute(
                select(Reservation)
                .where(Reservation.table_id == table_id, Reservation.date == day,
                       Reservation.status.in_(_HOLDING))
                .order_by(Reservation.start_time)
            ).scalars())
        return self._read(query)

    def list_for_user(self, user_id: int) -> list[Reservation]:
        return self._read(lambda: list(self.session.execute(
            select(Reservation).where(Reservation.user_id == user_id)
            .order_by(Reservation.date.desc(), Reservation.start_time.desc())
        ).scalars()))

    def list_for_cafe(self, cafe_id: int, day: date, page: int, page_size: int) -> tuple[int, list[Reservation]]:
        def query():
            base = (
                select(Reservation).join(CafeTable, Reservation.table_id == CafeTable.id)
                .where(CafeTable.cafe_id == cafe_id, Reservation.date == day)
            )
            total = self.session.execute(
                select(func.count()).select_from(base.subquery())
            ).scalar_one()
            rows = self.session.execute(
                base.order_by(Reservation.start_time.asc(), CafeTable.number.asc())
                .limit(page_size).offset((page - 1) * page_size)
            ).scalars()
            return int(total), list(rows)
        return self._read(query)

    def list_elapsed(self, now: datetime) -> list[Reservation]:
        """Confirmed reservations dated on or before `now`; callers check the end time."""
        return self._read(lambda: list(self.session.execute(
            select(Reservation).where(Reservation.status == Status.CONFIRMED.value,
                                      Reservation.date <= now.date())
        ).scalars()))

    def insert(self, reservation: Reservation) -> Reservation:
        """
        Persists a new reservation. Re-checks the overlap rule in the same
        transaction and draws a fresh code while the current one is taken.
        The unique constraint on the code stays the final guard.
        """
        others = [r.slot for r in self.list_active(reservation.table_id, reservation.date)]
        if not is_available(reservation.slot, others):
            self.session.rollback()
            raise SlotUnavailable("Table is already booked for this time.")

        for attempt in range(CODE_ATTEMPTS):
            code = reservation.code or reservation_code()
            if self.get_by_code(code) is None:
                reservation.code = code
                break
            logger.warning("Reservation code %s already taken (attempt %d)", code, attempt + 1)
            reservation.code = None
        else:
            self.session.rollback()
            raise StorageError("Could not allocate a unique reservation code.")

        self.session.add(reservation)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise StorageError("Reservation conflicted with a concurrent write, retry.") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Could not store reservation.") from e
        return reservation

    def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        self.commit()
        return reservation

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Could not store reservation.") from e

    def rollback(self):
        self.session.rollback()

    def _read(self, query):
        try:
            return query()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Storage is unavailable.") from e
