"""
Typed failures raised by the booking core.

Every class carries a ``kind`` (stable machine-readable name) and the HTTP
status the API layer renders it with.
"""


class BookingError(Exception):
    """Base class for all booking service failures."""

    kind = "BookingError"
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInputError(BookingError):
    """Non-positive ids or durations, malformed times, empty required fields."""

    kind = "InvalidInput"
    status_code = 400


class NotFoundError(BookingError):
    """Field, booking, schedule or payment does not exist."""

    kind = "NotFound"
    status_code = 404


class UnauthorizedError(BookingError):
    """Caller does not own the field or booking being acted on."""

    kind = "Unauthorized"
    status_code = 403


class SlotUnavailableError(BookingError):
    """Requested window overlaps an active booking."""

    kind = "SlotUnavailable"
    status_code = 409


class CancellationWindowClosedError(BookingError):
    """Cancellation attempted inside the cutoff before the booking starts."""

    kind = "CancellationWindowClosed"
    status_code = 409


class InvalidStateTransitionError(BookingError):
    """Lifecycle transition not permitted from the current status."""

    kind = "InvalidStateTransition"
    status_code = 409


class FieldInUseError(BookingError):
    """Field still has pending or confirmed bookings."""

    kind = "FieldInUse"
    status_code = 409


class StoreFailureError(BookingError):
    """Persistence layer failed; wraps the original database error."""

    kind = "StoreFailure"
    status_code = 503
