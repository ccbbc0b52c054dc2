from functools import wraps
from flask import current_app, g, request
from .errors import Forbidden, InvalidToken
from .identity import Identity

GUEST_COOKIE = "auth-token"
STAFF_COOKIE = "admin-token"


def request_token() -> str | None:
    """Bearer token from the Authorization header, falling back to the session cookies."""
    auth_header = request.headers.get("Authorization", "").strip()
    if auth_header:
        if not auth_header.lower().startswith("bearer "):
            raise InvalidToken("Authorization header is not a bearer token.")
        return auth_header[7:].strip()
    return request.cookies.get(STAFF_COOKIE) or request.cookies.get(GUEST_COOKIE)


def current_identity() -> Identity:
    g.identity = current_app.extensions["sessions"].validate(request_token())
    return g.identity


def login_required(kind: str | None = None):
    """Resolves the caller's identity, optionally requiring a guest or staff session."""
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            identity = current_identity()
            if kind and identity.kind != kind:
                raise Forbidden(f"This action requires a {kind} session.")
            return view(*args, **kwargs)
        return wrapper
    return decorator
