"""
Domain errors for the barter core.
Each error carries a kind (NotFound, Forbidden, ...) and the HTTP status the
API layer renders it with. Raised by services, translated once in main.py.
"""

from fastapi import status


class BarterError(Exception):
    """Base class. `kind` is the stable, client-facing error category."""

    kind = "Error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class NotFoundError(BarterError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(BarterError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidOperationError(BarterError):
    kind = "InvalidOperation"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(BarterError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class ReservationError(BarterError):
    """Write sequence failed after validation passed. Transaction is rolled back."""

    kind = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
