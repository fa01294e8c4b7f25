"""
Error taxonomy for booking, check-in and reward flows.

Every error carries a stable ``error_code`` used in the API envelope
``{"detail": {"error_code": ..., "message": ...}}`` and exactly one
human-readable message from ``ERROR_MESSAGES``.
"""
from typing import Optional


ERROR_MESSAGES = {
    # Booking validation
    "MEMBERSHIP_INVALID": "You need an active membership to book classes",
    "DUPLICATE_BOOKING": "You already have a booking for this class",
    "SESSION_NOT_FOUND": "Class session not found",
    "SESSION_IN_PAST": "Cannot book a class that has already started",
    "SESSION_FULL": "This class is fully booked",
    "BOOKING_NOT_FOUND": "Booking not found",
    "ALREADY_CANCELLED": "This booking has already been cancelled",
    "CANCELLATION_WINDOW": "Bookings can no longer be cancelled this close to the class start",
    "SESSION_ALREADY_STARTED": "This class has already started",
    "INVALID_STATUS_TRANSITION": "This booking can no longer be changed",
    "INVALID_SESSION": "Session details are invalid",
    # Token and claim
    "TOKEN_EXPIRED": "This QR code has expired. Please generate a new one.",
    "TOKEN_MALFORMED": "This QR code is not valid",
    "TOKEN_USER_MISMATCH": "This QR code does not belong to you.",
    "GOAL_NOT_REACHED": "Reach both the hours and classes goals to unlock your reward",
    "ALREADY_CLAIMED": "This QR code has already been used",
    "NO_OPEN_CHECK_IN": "No active check-in found. Please check in first.",
    # Infrastructure
    "STORE_UNAVAILABLE": "Service temporarily unavailable. Please try again.",
    "RATE_LIMITED": "Too many requests. Please wait a moment and try again.",
}


class GymError(Exception):
    """Base class for every caller-visible failure."""

    error_code = "INTERNAL_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.message)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self.error_code]

    def to_dict(self) -> dict:
        body = {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.detail:
            body["detail"] = self.detail
        return body


# ============== Booking validation ==============

class MembershipInvalid(GymError):
    error_code = "MEMBERSHIP_INVALID"
    status_code = 403


class DuplicateBooking(GymError):
    error_code = "DUPLICATE_BOOKING"
    status_code = 409


class SessionNotFound(GymError):
    error_code = "SESSION_NOT_FOUND"
    status_code = 404


class SessionInPast(GymError):
    error_code = "SESSION_IN_PAST"


class SessionFull(GymError):
    error_code = "SESSION_FULL"
    status_code = 409


class BookingNotFound(GymError):
    error_code = "BOOKING_NOT_FOUND"
    status_code = 404


class AlreadyCancelled(GymError):
    error_code = "ALREADY_CANCELLED"
    status_code = 409


class CancellationWindowViolation(GymError):
    error_code = "CANCELLATION_WINDOW"


class SessionAlreadyStarted(GymError):
    error_code = "SESSION_ALREADY_STARTED"


class InvalidStatusTransition(GymError):
    error_code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class InvalidSession(GymError):
    error_code = "INVALID_SESSION"
    status_code = 422


# ============== Token and claim ==============

class TokenExpired(GymError):
    error_code = "TOKEN_EXPIRED"


class TokenMalformed(GymError):
    error_code = "TOKEN_MALFORMED"


class TokenUserMismatch(GymError):
    error_code = "TOKEN_USER_MISMATCH"
    status_code = 403


class GoalNotReached(GymError):
    error_code = "GOAL_NOT_REACHED"


class AlreadyClaimed(GymError):
    error_code = "ALREADY_CLAIMED"
    status_code = 409


class NoOpenCheckIn(GymError):
    error_code = "NO_OPEN_CHECK_IN"
    status_code = 409


# ============== Infrastructure ==============

class StoreUnavailable(GymError):
    error_code = "STORE_UNAVAILABLE"
    status_code = 503
    retryable = True


class RateLimited(GymError):
    error_code = "RATE_LIMITED"
    status_code = 429
    retryable = True

    def __init__(self, retry_after: float, detail: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(detail)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry_after"] = round(self.retry_after, 1)
        return body


def _all_error_classes(cls=GymError):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_error_classes(sub)


# Every error kind must render exactly one message
_missing = [c.__name__ for c in _all_error_classes() if c.error_code not in ERROR_MESSAGES]
if _missing:
    raise RuntimeError(f"Errors without a message: {_missing}")
