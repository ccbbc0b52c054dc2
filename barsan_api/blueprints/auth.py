import logging
from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash
from ..auth import GUEST_COOKIE, STAFF_COOKIE, request_token, login_required
from ..errors import InvalidRequest, Unauthorized
from ..extensions import db
from ..http import jerror
from ..identity import STAFF
from ..models import Admin, User
from ..schemas import LoginRequest, RegisterRequest
from ..sessions import identity_for

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)


def _sessions():
    return current_app.extensions["sessions"]


def _user_json(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "fullName": user.full_name,
        "phone": user.phone,
        "image": user.image,
        "isVerified": user.is_verified,
        "accounts": [{"provider": a.provider} for a in user.accounts],
    }


def _admin_json(admin: Admin) -> dict:
    return {
        "id": admin.id,
        "email": admin.email,
        "fullName": admin.full_name,
        "roles": [{"role": r.role, "cafeId": r.cafe_id} for r in admin.roles],
    }


def _signed_in(body: dict, token: str, cookie: str, status: int = 200):
    resp = jsonify(success=True, token=token, **body)
    resp.set_cookie(
        cookie, token,
        httponly=True,
        secure=not current_app.debug and not current_app.testing,
        samesite="Lax",
        max_age=int(_sessions().ttl.total_seconds()),
    )
    return resp, status


def _payload():
    payload = request.get_json(silent=True)
    if not payload:
        raise InvalidRequest("Missing or invalid JSON payload.")
    return payload


@bp.post("/register")
def register():
    data = RegisterRequest.model_validate(_payload())
    email = data.email.lower()
    if db.session.execute(select(User.id).where(User.email == email)).first():
        return jerror(409, "EMAIL_EXISTS", "Email already exists.")

    user = User(
        email=email,
        password_hash=generate_password_hash(data.password),
        full_name=data.full_name,
        phone=data.phone,
        is_verified=False,
    )
    db.session.add(user)
    db.session.commit()

    token = _sessions().issue(identity_for(user), request.remote_addr)
    return _signed_in({"user": _user_json(user)}, token, GUEST_COOKIE, 201)


@bp.post("/login")
def login():
    data = LoginRequest.model_validate(_payload())
    user = db.session.execute(
        select(User).where(User.email == data.email.lower())
    ).scalar_one_or_none()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, data.password):
        logger.info("Failed guest login for %s", data.email)
        raise Unauthorized("Invalid credentials.")

    token = _sessions().issue(identity_for(user), request.remote_addr)
    return _signed_in({"user": _user_json(user)}, token, GUEST_COOKIE)


@bp.post("/staff/login")
def staff_login():
    data = LoginRequest.model_validate(_payload())
    admin = db.session.execute(
        select(Admin).where(Admin.email == data.email.lower())
    ).scalar_one_or_none()
    if not admin or not admin.is_active or not check_password_hash(admin.password_hash, data.password):
        logger.info("Failed staff login for %s", data.email)
        raise Unauthorized("Invalid credentials.")

    token = _sessions().issue(identity_for(admin), request.remote_addr)
    return _signed_in({"admin": _admin_json(admin)}, token, STAFF_COOKIE)


@bp.get("/me")
@login_required()
def me():
    identity = g.identity
    if identity.kind == STAFF:
        return jsonify(admin=_admin_json(db.session.get(Admin, identity.id)))
    return jsonify(user=_user_json(db.session.get(User, identity.id)))


@bp.post("/logout")
def logout():
    try:
        _sessions().revoke(request_token())
    except Unauthorized:
        # malformed header, nothing to revoke
        pass

    resp = jsonify(success=True, message="Logged out successfully")
    for cookie in (GUEST_COOKIE, STAFF_COOKIE):
        resp.delete_cookie(cookie)
    return resp
