# Overview: Domain error taxonomy and the Flask handlers that render it as JSON.

"""
Error taxonomy for the booking core.

Every error raised by a service carries the HTTP status class it maps to, so
routes never translate exceptions by hand:

    AuthenticationMissing    401  no (valid) bearer credential
    AuthorizationDenied      403  wrong role or not the resource owner
    NotFound                 404  booking / worker / shop / service absent
    ValidationFailure        400  malformed or missing input
    QuotaExhausted           400  no cancellation tokens remaining
    InvalidStateTransition   409  current status does not allow the action
    DependencyFailure        500  data store unreachable (generic message)

InvalidStateTransition reports the booking's current status so clients can
reconcile stale UI state.
"""

from __future__ import annotations

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError


class ServiceError(Exception):
    """Base class for user-visible service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class AuthenticationMissing(ServiceError):
    status_code = 401


class AuthorizationDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class ValidationFailure(ServiceError):
    status_code = 400


class QuotaExhausted(ServiceError):
    status_code = 400

    def __init__(self, message: str, *, tokens_available: int = 0):
        super().__init__(message)
        self.tokens_available = tokens_available

    def to_dict(self) -> dict:
        return {"error": self.message, "tokens_available": self.tokens_available}


class InvalidStateTransition(ServiceError):
    status_code = 409

    def __init__(self, booking_id: int, current_status: str | None, action: str):
        super().__init__(
            f"Cannot {action} booking {booking_id}: current status is '{current_status}'"
        )
        self.booking_id = booking_id
        self.current_status = current_status
        self.action = action

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "booking_id": self.booking_id,
            "current_status": self.current_status,
        }


class DependencyFailure(ServiceError):
    status_code = 500

    def to_dict(self) -> dict:
        # Store details stay in the logs
        return {"error": "Internal server error"}


def register_error_handlers(app: Flask) -> None:
    """Render service errors and unexpected store failures as JSON."""

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        if exc.status_code >= 500:
            current_app.logger.error("Service dependency failure: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(exc: SQLAlchemyError):
        current_app.logger.exception("Unhandled data store error")
        return jsonify({"error": "Internal server error"}), 500
