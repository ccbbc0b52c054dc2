import itertools
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from barsan_api.app import create_app
from barsan_api.config import TestConfig
from barsan_api.extensions import db
from barsan_api.identity import GUEST, STAFF, Identity
from barsan_api.models import Admin, AdminRole, Cafe, CafeTable, User
from barsan_api.scheduling.availability import Slot
from barsan_api.scheduling.coordinator import BookingCoordinator
from barsan_api.scheduling.states import HOLDS_TABLE, Status
from barsan_api.utils.codes import reservation_code

DAY = date(2030, 6, 1)
NOW = datetime(2030, 6, 1, 9, 0)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_confirmation(self, data):
        self._record("confirmation", data)

    def send_cancellation(self, data):
        self._record("cancellation", data)

    def _record(self, kind, data):
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append((kind, data))


@dataclass
class FakeReservation:
    table_id: int
    date: date
    start_time: str
    duration: int
    party_size: int
    status: str | None
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    special_requests: str | None = None
    user_id: int | None = None
    id: int | None = None
    code: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    updated_at: datetime | None = None

    @property
    def slot(self) -> Slot:
        return Slot.at(self.start_time, self.duration)


class FakeStore:
    """
    In-memory stand-in for ReservationStore. It does no locking and no
    overlap re-check of its own, so only the coordinator keeps bookings apart.
    `read_delay` widens the window between reading and writing.
    """

    def __init__(self, tables, read_delay: float = 0.0):
        self.tables = {t.id: t for t in tables}
        self.rows: dict[int, FakeReservation] = {}
        self.read_delay = read_delay
        self.rollbacks = 0
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    def new_reservation(self, **fields):
        return FakeReservation(**fields)

    def get_table(self, table_id):
        return self.tables.get(table_id)

    def get(self, reservation_id, lock=False):
        return self.rows.get(reservation_id)

    def list_active(self, table_id, day, lock=False):
        with self._mutex:
            rows = [r for r in self.rows.values()
                    if r.table_id == table_id and r.date == day and Status(r.status) in HOLDS_TABLE]
        if self.read_delay:
            time.sleep(self.read_delay)
        return rows

    def list_elapsed(self, now):
        return [r for r in self.rows.values()
                if r.status == Status.CONFIRMED.value and r.date <= now.date()]

    def insert(self, reservation):
        with self._mutex:
            reservation.id = next(self._ids)
            reservation.code = reservation_code()
            self.rows[reservation.id] = reservation
        return reservation

    def save(self, reservation):
        return reservation

    def rollback(self):
        self.rollbacks += 1


def make_table(table_id=1, capacity=4, cafe_id=10, is_active=True,
               open_time="10:00", close_time="22:00"):
    cafe = SimpleNamespace(id=cafe_id, name="BarSan", open_time=open_time, close_time=close_time)
    return SimpleNamespace(id=table_id, cafe_id=cafe_id, capacity=capacity, is_active=is_active, cafe=cafe)


GUEST_ID = Identity(kind=GUEST, id=1, email="guest@example.com", verified=True)
OTHER_GUEST = Identity(kind=GUEST, id=2, email="other@example.com", verified=True)
STAFF_ID = Identity(kind=STAFF, id=7, email="staff@barsan.com", verified=True)
OTHER_CAFE_STAFF = Identity(kind=STAFF, id=8, email="noir@barsan.com", verified=True, cafe_ids=frozenset({99}))


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store():
    return FakeStore([make_table(1, capacity=4), make_table(2, capacity=2), make_table(3, is_active=False)])


@pytest.fixture
def coordinator(store, notifier, clock):
    return BookingCoordinator(store, notifier=notifier, clock=clock)


@pytest.fixture
def app(clock, notifier):
    app = create_app(TestConfig, notifier=notifier, clock=clock)
    with app.app_context():
        db.create_all()
        cafe = Cafe(name="BarSan", slug="barsan", open_time="10:00", close_time="22:00")
        cafe.tables = [CafeTable(number=1, capacity=4), CafeTable(number=2, capacity=2)]
        noir = Cafe(name="NOIR", slug="noir", open_time="17:00", close_time="23:30")
        noir.tables = [CafeTable(number=1, capacity=6)]
        db.session.add_all([
            cafe, noir,
            User(email="guest@example.com", password_hash=generate_password_hash("guest123"),
                 full_name="Guest One", phone="0812345678", is_verified=True),
            User(email="other@example.com", password_hash=generate_password_hash("other123"),
                 full_name="Guest Two"),
            Admin(email="admin@barsan.com", password_hash=generate_password_hash("admin123"),
                  full_name="Group Admin", roles=[AdminRole(role="owner")]),
        ])
        db.session.commit()
        db.session.add(Admin(email="noir@barsan.com", password_hash=generate_password_hash("noir1234"),
                             full_name="NOIR Manager", roles=[AdminRole(role="manager", cafe_id=noir.id)]))
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
