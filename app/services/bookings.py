"""
Booking Engine - create, cancel and move bookings through their lifecycle

Lifecycle:
    booked -> confirmed | cancelled | attended | no_show
    confirmed -> cancelled | attended | no_show
    cancelled, attended, no_show are terminal
"""
import logging
from typing import Callable, List, Optional, Tuple

from app.config import CANCELLATION_WINDOW_HOURS
from app.errors import (
    AlreadyCancelled,
    BookingNotFound,
    CancellationWindowViolation,
    DuplicateBooking,
    InvalidStatusTransition,
    MembershipInvalid,
    SessionAlreadyStarted,
    SessionFull,
    SessionInPast,
    SessionNotFound,
)
from app.models import Booking, BookingStatus, ClassSession
from app.store import BookingStore
from app.utils.helpers import format_hours, new_id, utc_now

logger = logging.getLogger(__name__)


class BookingEngine:
    def __init__(
        self,
        store: BookingStore,
        clock: Callable = utc_now,
        cancellation_window_hours: int = CANCELLATION_WINDOW_HOURS,
    ):
        self.store = store
        self.clock = clock
        self.cancellation_window_hours = cancellation_window_hours

    # ============== Member operations ==============

    def create_booking(self, user_id: str, session_id: str) -> Booking:
        """
        Book ``session_id`` for ``user_id``.

        Validation runs in a fixed order: membership, duplicate, session
        existence, start time, then capacity. The capacity recount and the
        insert happen together inside the store.
        """
        now = self.clock()

        if not self.store.has_valid_membership(user_id, now):
            raise MembershipInvalid()

        if self.store.find_active_booking(user_id, session_id):
            raise DuplicateBooking()

        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()

        if session.start_time <= now:
            raise SessionInPast()

        booking = Booking(
            id=new_id(),
            user_id=user_id,
            session_id=session_id,
            status=BookingStatus.BOOKED,
            created_at=now,
        )
        if not self.store.insert_booking_checked(booking):
            raise SessionFull()

        logger.info(f"Booking {booking.id} created: user {user_id} -> session {session_id}")
        return booking

    def cancel_booking(self, user_id: str, booking_id: str) -> Booking:
        """Cancel one of the caller's own bookings, freeing its slot."""
        booking = self.store.get_booking(booking_id)
        if booking is None or booking.user_id != user_id:
            raise BookingNotFound()

        if booking.status is BookingStatus.CANCELLED:
            raise AlreadyCancelled()

        if not booking.status.can_transition_to(BookingStatus.CANCELLED):
            raise InvalidStatusTransition(f"Booking is already {booking.status.value}")

        session = self.store.get_session(booking.session_id)
        if session is None:
            raise SessionNotFound()

        hours_until_start = session.hours_until_start(self.clock())
        if hours_until_start <= 0:
            raise SessionAlreadyStarted()
        if hours_until_start < self.cancellation_window_hours:
            raise CancellationWindowViolation(
                f"Class starts in {format_hours(hours_until_start)}"
            )

        cancelled = self._transition(booking, BookingStatus.CANCELLED)
        logger.info(f"Booking {booking_id} cancelled by user {user_id}")
        return cancelled

    def list_user_bookings(self, user_id: str) -> List[Tuple[Booking, Optional[ClassSession]]]:
        bookings = self.store.list_bookings_for_user(user_id)
        sessions = self.store.get_sessions({b.session_id for b in bookings})
        return [(b, sessions.get(b.session_id)) for b in bookings]

    # ============== Admin operations ==============

    def confirm_booking(self, booking_id: str) -> Booking:
        return self._transition(self._get(booking_id), BookingStatus.CONFIRMED)

    def mark_attended(self, booking_id: str) -> Booking:
        return self._transition(self._get(booking_id), BookingStatus.ATTENDED)

    def mark_no_show(self, booking_id: str) -> Booking:
        return self._transition(self._get(booking_id), BookingStatus.NO_SHOW)

    def list_session_bookings(self, session_id: str) -> List[Booking]:
        if self.store.get_session(session_id) is None:
            raise SessionNotFound()
        return self.store.list_bookings_for_session(session_id)

    # ============== Internals ==============

    def _get(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()
        return booking

    def _transition(self, booking: Booking, target: BookingStatus) -> Booking:
        if not booking.status.can_transition_to(target):
            if booking.status is BookingStatus.CANCELLED:
                raise AlreadyCancelled()
            raise InvalidStatusTransition(
                f"Cannot change booking from {booking.status.value} to {target.value}"
            )

        if not self.store.update_booking_status(booking.id, [booking.status], target):
            # Someone else moved the booking between our read and write
            current = self._get(booking.id)
            if current.status is BookingStatus.CANCELLED:
                raise AlreadyCancelled()
            raise InvalidStatusTransition(
                f"Booking changed to {current.status.value} concurrently"
            )

        return booking.model_copy(update={"status": target})
