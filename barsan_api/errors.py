"""
Typed errors raised by the scheduling core and the session layer.

Every error carries a stable ``code`` for API clients, the HTTP ``status`` the
routing layer should answer with, and a ``category`` so callers can branch on
the kind of failure instead of the message text:

- ``client``: the request itself is wrong (bad time, over capacity).
- ``policy``: the request is well formed but a business rule refuses it.
- ``auth``: missing, expired or insufficient credentials.
- ``internal``: an invariant was violated inside the server.
- ``transient``: the storage layer failed; the whole operation may be retried.
"""


class BookingError(Exception):
    status = 400
    code = "BOOKING_ERROR"
    category = "client"

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequest(BookingError):
    status = 422
    code = "INVALID_REQUEST"


class NotFound(BookingError):
    status = 404
    code = "NOT_FOUND"


class SlotUnavailable(BookingError):
    status = 409
    code = "SLOT_UNAVAILABLE"
    category = "policy"

    def __init__(self, message: str, alternatives: list[str] | None = None):
        super().__init__(message, details={"alternatives": alternatives or []})
        self.alternatives = alternatives or []


class CancellationWindowExpired(BookingError):
    status = 409
    code = "CANCELLATION_WINDOW_EXPIRED"
    category = "policy"


class InvalidTransition(BookingError):
    status = 409
    code = "INVALID_TRANSITION"
    category = "internal"


class Unauthorized(BookingError):
    status = 401
    code = "UNAUTHORIZED"
    category = "auth"


class TokenNotFound(Unauthorized):
    code = "TOKEN_NOT_FOUND"


class TokenExpired(Unauthorized):
    code = "TOKEN_EXPIRED"


class InvalidToken(Unauthorized):
    code = "INVALID_TOKEN"


class Forbidden(BookingError):
    status = 403
    code = "FORBIDDEN"
    category = "auth"


class StorageError(BookingError):
    status = 503
    code = "STORAGE_ERROR"
    category = "transient"
