"""
Domain exceptions.

Services raise these; the API layer maps them to JSON error responses of the
form {"error": message, **extra} with the exception's status_code.
"""

from typing import Any


class SalonError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, extra: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(SalonError):
    """Request data is missing or malformed."""

    status_code = 400


class NotFoundError(SalonError):
    """Referenced document does not exist."""

    status_code = 404


class ConflictError(SalonError):
    """Operation conflicts with existing state (e.g. slot already booked)."""

    status_code = 409


class InsufficientStockError(SalonError):
    """Requested usage exceeds the item's current quantity."""

    status_code = 400

    def __init__(self, message: str, available: float, requested: float):
        super().__init__(message, {"available": available, "requested": requested})
        self.available = available
        self.requested = requested
