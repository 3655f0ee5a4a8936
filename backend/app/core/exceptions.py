"""
Domain error taxonomy for the reservation core.

Services raise these directly, the same way the rest of the API raises
HTTPException. Each error carries a stable machine-readable `code` so
clients can tell a schedule conflict from a quota rejection even though
both map to 409.
"""

from typing import Any

from fastapi import HTTPException, status


class ReservationError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "RESERVATION_ERROR"

    def __init__(self, detail: str, **context: Any):
        super().__init__(status_code=type(self).status_code, detail=detail)
        self.context = context


class ValidationFailed(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_FAILED"


class SpaceUnavailable(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "SPACE_UNAVAILABLE"


class ScheduleConflict(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "SCHEDULE_CONFLICT"


class QuotaExceeded(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "QUOTA_EXCEEDED"


class Forbidden(ReservationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class InvalidState(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_STATE"


class TooEarlyToCheckIn(InvalidState):
    code = "TOO_EARLY_TO_CHECK_IN"


class ReservationExpired(InvalidState):
    code = "RESERVATION_EXPIRED"


class NotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class StoreFailure(ReservationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "STORE_FAILURE"
