import logging
from flask import jsonify
from pydantic import ValidationError
from .errors import BookingError, Unauthorized

logger = logging.getLogger(__name__)


def jerror(status: int, code: str, message: str, details=None):
    payload = {"code": code, "message": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def register_error_handlers(app):

    @app.errorhandler(BookingError)
    def booking_error(e: BookingError):
        if isinstance(e, Unauthorized):
            # expired vs unknown vs malformed only goes to the log
            logger.debug("Authentication failed: %s (%s)", e.code, e.message)
            return jerror(401, "UNAUTHORIZED", "Missing or invalid session.")
        if e.category == "internal":
            logger.error("Reservation state anomaly: %s", e.message)
        elif e.category == "transient":
            logger.error("Storage failure: %s", e.__cause__ or e.message)
        return jerror(e.status, e.code, e.message, e.details)

    @app.errorhandler(ValidationError)
    def validation_error(e: ValidationError):
        return jerror(422, "VALIDATION_ERROR", "Invalid input.",
                      details=e.errors(include_url=False, include_context=False))
