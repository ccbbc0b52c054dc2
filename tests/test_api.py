from datetime import datetime

from barsan_api.ratelimit import FixedWindowLimiter
from barsan_api.utils.codes import CODE_RE

DAY = "2030-06-01"


def _login(client, email, password, staff=False):
    path = "/api/auth/staff/login" if staff else "/api/auth/login"
    r = client.post(path, json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return {"Authorization": f"Bearer {r.get_json()['token']}"}


def _guest(client):
    return _login(client, "guest@example.com", "guest123")


def _admin(client):
    return _login(client, "admin@barsan.com", "admin123", staff=True)


def _table_ids(client, slug="barsan"):
    cafes = client.get("/api/cafes").get_json()["cafes"]
    cafe = next(c for c in cafes if c["slug"] == slug)
    detail = client.get(f"/api/cafes/{cafe['id']}").get_json()
    return cafe["id"], [t["id"] for t in detail["tables"]]


def _book(client, headers, table_id, time="12:00", guests=2, duration=90):
    return client.post(
        "/api/reservations",
        json={"tableId": table_id, "date": DAY, "time": time, "guests": guests, "duration": duration},
        headers=headers,
    )


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json().get("status") == "ok"


def test_register_then_me(client):
    r = client.post("/api/auth/register", json={
        "email": "New.Guest@example.com", "password": "secret1", "fullName": "New Guest",
    })
    assert r.status_code == 201
    body = r.get_json()
    assert body["user"]["email"] == "new.guest@example.com"
    assert "auth-token" in r.headers.get("Set-Cookie", "")

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()["user"]["fullName"] == "New Guest"


def test_register_duplicate_email_409(client):
    r = client.post("/api/auth/register", json={
        "email": "guest@example.com", "password": "secret1", "fullName": "Again",
    })
    assert r.status_code == 409
    assert r.get_json()["code"] == "EMAIL_EXISTS"


def test_register_invalid_email_422(client):
    r = client.post("/api/auth/register", json={"email": "not-an-email", "password": "secret1", "fullName": "X"})
    assert r.status_code == 422
    assert r.get_json()["code"] == "VALIDATION_ERROR"


def test_login_wrong_password_401(client):
    r = client.post("/api/auth/login", json={"email": "guest@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "UNAUTHORIZED"


def test_logout_revokes_token(client):
    headers = _guest(client)
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    r = client.get("/api/auth/me", headers=headers)
    assert r.status_code == 401
    assert r.get_json()["message"] == "Missing or invalid session."


def test_create_reservation_201_returns_payload(client, notifier):
    _, tables = _table_ids(client)
    r = _book(client, _guest(client), tables[0], guests=4)
    assert r.status_code == 201
    body = r.get_json()
    assert CODE_RE.match(body["code"])
    assert body["status"] == "confirmed"
    assert (body["tableId"], body["date"], body["time"], body["duration"], body["partySize"]) == \
        (tables[0], DAY, "12:00", 90, 4)
    assert body["guestEmail"] == "guest@example.com"
    assert notifier.sent[0][1]["reservation_code"] == body["code"]


def test_create_reservation_requires_session(client):
    _, tables = _table_ids(client)
    r = _book(client, {}, tables[0])
    assert r.status_code == 401


def test_create_reservation_over_capacity_422(client):
    _, tables = _table_ids(client)
    r = _book(client, _guest(client), tables[1], guests=3)
    assert r.status_code == 422
    assert r.get_json()["code"] == "INVALID_REQUEST"


def test_create_reservation_bad_time_422(client):
    _, tables = _table_ids(client)
    r = _book(client, _guest(client), tables[0], time="12:75")
    assert r.status_code == 422
    assert r.get_json()["code"] == "VALIDATION_ERROR"


def test_double_booking_409_with_alternatives(client):
    _, tables = _table_ids(client)
    headers = _guest(client)
    assert _book(client, headers, tables[0], time="12:00").status_code == 201
    other = _login(client, "other@example.com", "other123")
    r = _book(client, other, tables[0], time="12:30")
    assert r.status_code == 409
    body = r.get_json()
    assert body["code"] == "SLOT_UNAVAILABLE"
    assert "13:30" in body["details"]["alternatives"]


def test_availability_endpoint(client):
    _, tables = _table_ids(client)
    _book(client, _guest(client), tables[0], time="18:00", duration=120)
    free = client.get("/api/reservations/availability",
                      query_string={"table_id": tables[0], "date": DAY, "time": "16:00", "duration": 120})
    assert free.status_code == 200
    assert free.get_json()["available"] is True

    taken = client.get("/api/reservations/availability",
                       query_string={"table_id": tables[0], "date": DAY, "time": "19:00"})
    body = taken.get_json()
    assert body["available"] is False
    assert body["duration"] == 120
    assert "20:00" in body["alternatives"]


def test_get_and_list_own_reservations(client):
    _, tables = _table_ids(client)
    headers = _guest(client)
    code = _book(client, headers, tables[0]).get_json()["code"]

    r = client.get(f"/api/reservations/{code}", headers=headers)
    assert r.status_code == 200
    assert r.get_json()["code"] == code

    mine = client.get("/api/reservations/mine", headers=headers).get_json()["reservations"]
    assert [m["code"] for m in mine] == [code]

    other = _login(client, "other@example.com", "other123")
    assert client.get(f"/api/reservations/{code}", headers=other).status_code == 404


def test_guest_cancel_before_cutoff(client, notifier):
    _, tables = _table_ids(client)
    headers = _guest(client)
    reservation = _book(client, headers, tables[0], time="12:00").get_json()
    r = client.post(f"/api/reservations/{reservation['id']}/cancel", json={"reason": "sick"}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()["status"] == "cancelled"
    assert r.get_json()["cancellationReason"] == "sick"
    assert notifier.sent[-1][0] == "cancellation"

    again = client.post(f"/api/reservations/{reservation['id']}/cancel", headers=headers)
    assert again.status_code == 409
    assert again.get_json()["code"] == "INVALID_TRANSITION"


def test_guest_cancel_inside_cutoff_409(client, clock):
    _, tables = _table_ids(client)
    headers = _guest(client)
    reservation = _book(client, headers, tables[0], time="12:00").get_json()
    clock.now = datetime(2030, 6, 1, 11, 0)
    r = client.post(f"/api/reservations/{reservation['id']}/cancel", headers=headers)
    assert r.status_code == 409
    assert r.get_json()["code"] == "CANCELLATION_WINDOW_EXPIRED"
    code = reservation["code"]
    assert client.get(f"/api/reservations/{code}", headers=headers).get_json()["status"] == "confirmed"


def test_admin_list_requires_staff_session(client):
    cafe_id, _ = _table_ids(client)
    r = client.get("/api/reservations", query_string={"cafe_id": cafe_id, "date": DAY})
    assert r.status_code == 401
    assert r.get_json()["code"] == "UNAUTHORIZED"

    r = client.get("/api/reservations", query_string={"cafe_id": cafe_id, "date": DAY}, headers=_guest(client))
    assert r.status_code == 403


def test_admin_list_with_token_contains_new_reservation(client):
    cafe_id, tables = _table_ids(client)
    _book(client, _guest(client), tables[0], time="12:00")
    _book(client, _guest(client), tables[1], time="12:00")

    r = client.get("/api/reservations", query_string={"cafe_id": cafe_id, "date": DAY, "page": 1, "page_size": 1},
                   headers=_admin(client))
    assert r.status_code == 200
    data = r.get_json()
    assert data["total"] == 2
    assert len(data["reservations"]) == 1
    assert data["reservations"][0]["guestEmail"] == "guest@example.com"


def test_scoped_staff_cannot_list_other_cafe(client):
    cafe_id, _ = _table_ids(client)
    noir = _login(client, "noir@barsan.com", "noir1234", staff=True)
    r = client.get("/api/reservations", query_string={"cafe_id": cafe_id, "date": DAY}, headers=noir)
    assert r.status_code == 403


def test_staff_no_show_and_complete(client, clock):
    _, tables = _table_ids(client)
    guest = _guest(client)
    first = _book(client, guest, tables[0], time="12:00", duration=60).get_json()
    second = _book(client, guest, tables[0], time="13:00", duration=60).get_json()
    admin = _admin(client)

    clock.now = datetime(2030, 6, 1, 12, 30)
    r = client.post(f"/api/reservations/{first['id']}/no-show", headers=admin)
    assert r.get_json()["status"] == "no_show"
    assert client.post(f"/api/reservations/{second['id']}/complete", headers=guest).status_code == 403

    clock.now = datetime(2030, 6, 1, 13, 30)
    early = client.post(f"/api/reservations/{second['id']}/complete", headers=admin)
    assert early.status_code == 409
    assert early.get_json()["code"] == "INVALID_TRANSITION"

    clock.now = datetime(2030, 6, 1, 14, 0)
    r = client.post(f"/api/reservations/{second['id']}/complete", headers=admin)
    assert r.get_json()["status"] == "completed"


def test_no_show_slot_cannot_be_rebooked(client, clock):
    _, tables = _table_ids(client)
    reservation = _book(client, _guest(client), tables[0], time="12:00", duration=120).get_json()
    clock.now = datetime(2030, 6, 1, 12, 20)
    r = client.post(f"/api/reservations/{reservation['id']}/no-show", headers=_admin(client))
    assert r.get_json()["status"] == "no_show"

    other = _login(client, "other@example.com", "other123")
    r = _book(client, other, tables[0], time="12:30", duration=60)
    assert r.status_code == 409
    assert r.get_json()["code"] == "SLOT_UNAVAILABLE"


def test_staff_creates_cafe_and_table(client):
    admin = _admin(client)
    r = client.post("/api/cafes", json={"name": "Moon", "slug": "moon", "openTime": "08:00", "closeTime": "16:00"},
                    headers=admin)
    assert r.status_code == 201
    cafe_id = r.get_json()["id"]

    t = client.post(f"/api/cafes/{cafe_id}/tables", json={"number": 1, "capacity": 2}, headers=admin)
    assert t.status_code == 201
    assert client.post(f"/api/cafes/{cafe_id}/tables", json={"number": 1, "capacity": 2},
                       headers=admin).status_code == 422

    bad = client.post("/api/cafes", json={"name": "Late", "slug": "late", "openTime": "22:00", "closeTime": "02:00"},
                      headers=admin)
    assert bad.status_code == 422


def test_complete_elapsed_cli(app, client, clock):
    _, tables = _table_ids(client)
    _book(client, _guest(client), tables[0], time="10:00", duration=60)
    clock.now = datetime(2030, 6, 2, 9, 0)
    result = app.test_cli_runner().invoke(args=["complete-elapsed"])
    assert "Completed 1 reservations." in result.output


def test_booking_rate_limit_ignores_forwarded_for(app, client):
    app.extensions["rate_limiter"] = FixedWindowLimiter(2, window=60, clock=lambda: 0)
    _, tables = _table_ids(client)
    headers = _guest(client)
    assert _book(client, headers, tables[0], time="10:00", duration=60).status_code == 201
    assert _book(client, headers, tables[0], time="11:00", duration=60).status_code == 201

    spoofed = {**headers, "X-Forwarded-For": "203.0.113.9"}
    r = _book(client, spoofed, tables[0], time="12:00", duration=60)
    assert r.status_code == 429
    assert r.get_json()["code"] == "RATE_LIMITED"
