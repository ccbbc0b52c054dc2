from flask import Blueprint, request, jsonify, current_app, g
from datetime import datetime
from ..auth import login_required
from ..errors import Forbidden, InvalidRequest, NotFound
from ..extensions import db
from ..http import jerror
from ..identity import GUEST, STAFF
from ..models import User
from ..scheduling.coordinator import Contact
from ..schemas import AvailabilityQuery, BookRequest, CancelRequest
from ..utils.time import api_iso_z

bp = Blueprint("reservations", __name__)


def _client_ip() -> str:
    # X-Forwarded-For is only honoured through ProxyFix, see PROXY_COUNT
    return request.remote_addr or "0.0.0.0"


def _coordinator():
    return current_app.extensions["booking"]


def reservation_json(r) -> dict:
    return {
        "id": r.id,
        "code": r.code,
        "tableId": r.table_id,
        "tableNumber": r.table.number if r.table else None,
        "cafeId": r.table.cafe_id if r.table else None,
        "date": r.date.isoformat(),
        "time": r.start_time,
        "duration": r.duration,
        "partySize": r.party_size,
        "status": r.status,
        "guestName": r.guest_name,
        "guestEmail": r.guest_email,
        "guestPhone": r.guest_phone,
        "specialRequests": r.special_requests,
        "cancellationReason": r.cancellation_reason,
        "createdAt": api_iso_z(r.created_at) if r.created_at else None,
    }


@bp.get("/availability")
def availability():
    query = AvailabilityQuery.model_validate(request.args.to_dict())
    duration = query.duration or current_app.config["DEFAULT_DURATION_MINUTES"]
    result = _coordinator().check_availability(
        query.table_id, query.date, query.time, duration, query.party_size
    )
    return jsonify(
        tableId=query.table_id,
        date=query.date.isoformat(),
        time=query.time,
        duration=duration,
        available=result.available,
        alternatives=result.alternatives,
    )


@bp.post("")
@login_required()
def create_reservation():
    if not current_app.extensions["rate_limiter"].allow(_client_ip()):
        return jerror(429, "RATE_LIMITED", "Too many requests. Try again shortly.")

    payload = request.get_json(silent=True)
    if not payload:
        return jerror(400, "INVALID_PAYLOAD", "Missing or invalid JSON payload.")

    data = BookRequest.model_validate(payload)
    identity = g.identity

    if identity.kind == GUEST:
        user = db.session.get(User, identity.id)
        name = data.name or user.full_name or identity.email
        email = identity.email
        phone = data.phone or user.phone
    else:
        if not (data.name and data.email):
            raise InvalidRequest("Staff bookings need the guest's name and email.")
        name, email, phone = data.name, data.email, data.phone

    reservation = _coordinator().book(
        table_id=data.table_id,
        day=data.date,
        start_time=data.time,
        duration=data.duration or current_app.config["DEFAULT_DURATION_MINUTES"],
        party_size=data.party_size,
        actor=identity,
        contact=Contact(name=name, email=str(email).lower(), phone=phone,
                        special_requests=data.special_requests),
    )
    return jsonify(reservation_json(reservation)), 201


@bp.get("/mine")
@login_required(GUEST)
def my_reservations():
    rows = _coordinator().store.list_for_user(g.identity.id)
    return jsonify(reservations=[reservation_json(r) for r in rows])


@bp.get("/<code>")
@login_required()
def get_reservation(code: str):
    reservation = _coordinator().store.get_by_code(code.upper())
    identity = g.identity
    if reservation is None or (identity.kind == GUEST and reservation.user_id != identity.id):
        raise NotFound("Reservation not found.")
    if identity.kind == STAFF and not identity.can_manage(reservation.table.cafe_id):
        raise Forbidden("Not allowed to view reservations at this cafe.")
    return jsonify(reservation_json(reservation))


@bp.get("")
@login_required(STAFF)
def list_reservations():
    """
    Staff list for one cafe and day with pagination.
    Query: ?cafe_id=1&date=YYYY-MM-DD&page=1&page_size=20
    """
    cafe_id = request.args.get("cafe_id", type=int)
    if not cafe_id:
        return jerror(400, "MISSING_CAFE", "Missing 'cafe_id' query parameter.")
    if not g.identity.can_manage(cafe_id):
        raise Forbidden("Not allowed to view reservations at this cafe.")
    date_str = request.args.get("date")
    if not date_str:
        return jerror(400, "MISSING_DATE", "Missing 'date' query parameter (YYYY-MM-DD).")
    try:
        day = datetime.fromisoformat(date_str).date()
    except ValueError as e:
        return jerror(422, "BAD_DATE", "Invalid date format. Use YYYY-MM-DD.", str(e))

    page = max(request.args.get("page", 1, type=int), 1)
    page_size = min(max(request.args.get("page_size", 20, type=int), 1), 100)

    total, rows = _coordinator().store.list_for_cafe(cafe_id, day, page, page_size)
    return jsonify(page=page, pageSize=page_size, total=total,
                   reservations=[reservation_json(r) for r in rows])


@bp.post("/<int:reservation_id>/cancel")
@login_required()
def cancel_reservation(reservation_id: int):
    data = CancelRequest.model_validate(request.get_json(silent=True) or {})
    reservation = _coordinator().cancel(reservation_id, g.identity, reason=data.reason)
    return jsonify(reservation_json(reservation))


@bp.post("/<int:reservation_id>/complete")
@login_required(STAFF)
def complete_reservation(reservation_id: int):
    reservation = _coordinator().mark_completed(reservation_id, g.identity)
    return jsonify(reservation_json(reservation))


@bp.post("/<int:reservation_id>/no-show")
@login_required(STAFF)
def no_show_reservation(reservation_id: int):
    reservation = _coordinator().mark_no_show(reservation_id, g.identity)
    return jsonify(reservation_json(reservation))
