"""
Persistent store boundary.

``BookingStore`` is the interface the services consume; ``MySQLStore`` is the
production implementation on top of ``schema.sql``. Two guarantees are pushed
into the database rather than checked from Python:

* ``insert_booking_checked`` locks the session row, recounts occupying
  bookings and inserts in a single transaction, so two bookers can never both
  take the last slot.
* ``insert_reward_claim`` relies on the unique key over
  (user_id, qr_timestamp, qr_session_id); a duplicate insert raises
  ``AlreadyClaimed``.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import pymysql

from app.db import get_db_connection
from app.errors import AlreadyClaimed, DuplicateBooking, SessionNotFound, StoreUnavailable
from app.models import (
    Booking,
    BookingStatus,
    CheckIn,
    ClassSession,
    Coupon,
    Membership,
    OCCUPYING_STATUSES,
    RewardClaim,
)

logger = logging.getLogger(__name__)

MYSQL_DUPLICATE_ENTRY = 1062


class BookingStore(ABC):
    """Everything the booking, check-in and reward services read or write."""

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreUnavailable when the backing database cannot be reached."""

    # ---- sessions ----

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ClassSession]:
        ...

    @abstractmethod
    def get_sessions(self, session_ids: Iterable[str]) -> Dict[str, ClassSession]:
        ...

    @abstractmethod
    def list_sessions(self, start_from: datetime, start_to: datetime) -> List[ClassSession]:
        ...

    @abstractmethod
    def insert_session(self, session: ClassSession) -> None:
        ...

    @abstractmethod
    def update_session(self, session: ClassSession) -> None:
        ...

    # ---- bookings ----

    @abstractmethod
    def count_occupying(self, session_ids: Iterable[str]) -> Dict[str, int]:
        """Bookings per session whose status holds a slot."""

    @abstractmethod
    def find_active_booking(self, user_id: str, session_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def list_bookings_for_user(self, user_id: str) -> List[Booking]:
        ...

    @abstractmethod
    def list_bookings_for_session(self, session_id: str) -> List[Booking]:
        ...

    @abstractmethod
    def insert_booking_checked(self, booking: Booking) -> bool:
        """
        Insert ``booking`` only if its session still has room.

        Returns False when the session is full. Raises ``SessionNotFound`` if
        the session vanished and ``DuplicateBooking`` if the user already
        holds a non-cancelled booking for it.
        """

    @abstractmethod
    def update_booking_status(
        self, booking_id: str, expected: Iterable[BookingStatus], new_status: BookingStatus
    ) -> bool:
        """Set the status only if the current one is in ``expected``."""

    @abstractmethod
    def count_attended_since(self, user_id: str, since: Optional[datetime]) -> int:
        ...

    @abstractmethod
    def mark_no_shows(self, ended_before: datetime) -> int:
        ...

    # ---- memberships ----

    @abstractmethod
    def has_valid_membership(self, user_id: str, now: datetime) -> bool:
        ...

    @abstractmethod
    def expire_memberships(self, now: datetime) -> int:
        ...

    # ---- check-ins ----

    @abstractmethod
    def insert_check_in(self, check_in: CheckIn) -> None:
        ...

    @abstractmethod
    def latest_open_check_in(self, user_id: str) -> Optional[CheckIn]:
        ...

    @abstractmethod
    def close_check_in(self, check_in_id: str, check_out_time: datetime, duration_minutes: int) -> bool:
        """Set the check-out time only if the check-in is still open."""

    @abstractmethod
    def list_check_ins_since(
        self, user_id: str, since: Optional[datetime], limit: Optional[int] = None
    ) -> List[CheckIn]:
        """Newest first, at most ``limit`` rows when given."""

    # ---- reward claims ----

    @abstractmethod
    def latest_reward_claim(self, user_id: str) -> Optional[RewardClaim]:
        ...

    @abstractmethod
    def get_reward_claim(self, user_id: str, qr_timestamp: int, qr_session_id: str) -> Optional[RewardClaim]:
        ...

    @abstractmethod
    def insert_reward_claim(self, claim: RewardClaim) -> None:
        """Raises ``AlreadyClaimed`` when the claim key already exists."""

    # ---- coupons ----

    @abstractmethod
    def find_valid_coupon(self, code: str, now: datetime) -> Optional[Coupon]:
        ...


# ============== MySQL implementation ==============

def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Store every timestamp as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _placeholders(values) -> str:
    return ", ".join(["%s"] * len(values))


_OCCUPYING = sorted(s.value for s in OCCUPYING_STATUSES)


def _session_from_row(row: dict) -> ClassSession:
    return ClassSession(
        id=row["id"],
        name=row["name"],
        instructor=row["instructor"],
        start_time=_from_db(row["start_time"]),
        end_time=_from_db(row["end_time"]),
        capacity=row["capacity"],
        class_id=row["class_id"],
    )


def _booking_from_row(row: dict) -> Booking:
    return Booking(
        id=row["id"],
        user_id=row["user_id"],
        session_id=row["session_id"],
        status=BookingStatus(row["status"]),
        created_at=_from_db(row["created_at"]),
    )


def _membership_from_row(row: dict) -> Membership:
    return Membership(
        id=row["id"],
        user_id=row["user_id"],
        status=row["status"],
        payment_status=row["payment_status"],
        start_date=_from_db(row["start_date"]),
        end_date=_from_db(row["end_date"]),
    )


def _check_in_from_row(row: dict) -> CheckIn:
    return CheckIn(
        id=row["id"],
        user_id=row["user_id"],
        check_in_time=_from_db(row["check_in_time"]),
        check_out_time=_from_db(row["check_out_time"]),
        duration_minutes=row["duration_minutes"],
    )


def _claim_from_row(row: dict) -> RewardClaim:
    return RewardClaim(
        id=row["id"],
        user_id=row["user_id"],
        claimed_at=_from_db(row["claimed_at"]),
        reward_type=row["reward_type"],
        qr_timestamp=row["qr_timestamp"],
        qr_session_id=row["qr_session_id"] or "",
    )


SESSION_COLUMNS = "id, name, instructor, start_time, end_time, capacity, class_id"
BOOKING_COLUMNS = "id, user_id, session_id, status, created_at"
CHECK_IN_COLUMNS = "id, user_id, check_in_time, check_out_time, duration_minutes"


class MySQLStore(BookingStore):
    """One short-lived connection per call, as every router in this app does."""

    @contextmanager
    def _cursor(self, commit: bool = False):
        try:
            conn = get_db_connection()
        except pymysql.err.MySQLError as e:
            logger.error(f"Database connection failed: {e}", exc_info=True)
            raise StoreUnavailable(str(e)) from e

        cursor = conn.cursor(dictionary=True)
        try:
            yield cursor
            if commit:
                conn.commit()
        except (pymysql.err.OperationalError, pymysql.err.InterfaceError) as e:
            conn.rollback()
            logger.error(f"Database error: {e}", exc_info=True)
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def ping(self):
        with self._cursor() as cursor:
            cursor.execute("SELECT 1")

    # ---- sessions ----

    def get_session(self, session_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {SESSION_COLUMNS} FROM class_sessions WHERE id = %s",
                (session_id,),
            )
            row = cursor.fetchone()
        return _session_from_row(row) if row else None

    def get_sessions(self, session_ids):
        ids = list(session_ids)
        if not ids:
            return {}
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {SESSION_COLUMNS} FROM class_sessions WHERE id IN ({_placeholders(ids)})",
                ids,
            )
            rows = cursor.fetchall()
        return {row["id"]: _session_from_row(row) for row in rows}

    def list_sessions(self, start_from, start_to):
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {SESSION_COLUMNS} FROM class_sessions
                WHERE start_time >= %s AND start_time < %s
                ORDER BY start_time ASC
                """,
                (_to_db(start_from), _to_db(start_to)),
            )
            rows = cursor.fetchall()
        return [_session_from_row(row) for row in rows]

    def insert_session(self, session):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                INSERT INTO class_sessions
                (id, name, instructor, start_time, end_time, capacity, class_id, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, UTC_TIMESTAMP())
                """,
                (
                    session.id, session.name, session.instructor,
                    _to_db(session.start_time), _to_db(session.end_time),
                    session.capacity, session.class_id,
                ),
            )

    def update_session(self, session):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                UPDATE class_sessions
                SET name = %s, instructor = %s, start_time = %s, end_time = %s,
                    capacity = %s, class_id = %s
                WHERE id = %s
                """,
                (
                    session.name, session.instructor,
                    _to_db(session.start_time), _to_db(session.end_time),
                    session.capacity, session.class_id, session.id,
                ),
            )

    # ---- bookings ----

    def count_occupying(self, session_ids):
        ids = list(session_ids)
        if not ids:
            return {}
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT session_id, COUNT(*) AS booked
                FROM class_bookings
                WHERE session_id IN ({_placeholders(ids)})
                  AND status IN ({_placeholders(_OCCUPYING)})
                GROUP BY session_id
                """,
                ids + _OCCUPYING,
            )
            rows = cursor.fetchall()
        counts = {session_id: 0 for session_id in ids}
        counts.update({row["session_id"]: int(row["booked"]) for row in rows})
        return counts

    def find_active_booking(self, user_id, session_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {BOOKING_COLUMNS} FROM class_bookings
                WHERE user_id = %s AND session_id = %s AND status != 'cancelled'
                LIMIT 1
                """,
                (user_id, session_id),
            )
            row = cursor.fetchone()
        return _booking_from_row(row) if row else None

    def get_booking(self, booking_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {BOOKING_COLUMNS} FROM class_bookings WHERE id = %s",
                (booking_id,),
            )
            row = cursor.fetchone()
        return _booking_from_row(row) if row else None

    def list_bookings_for_user(self, user_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {BOOKING_COLUMNS} FROM class_bookings
                WHERE user_id = %s
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [_booking_from_row(row) for row in rows]

    def list_bookings_for_session(self, session_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {BOOKING_COLUMNS} FROM class_bookings
                WHERE session_id = %s
                ORDER BY created_at ASC
                """,
                (session_id,),
            )
            rows = cursor.fetchall()
        return [_booking_from_row(row) for row in rows]

    def insert_booking_checked(self, booking):
        with self._cursor(commit=True) as cursor:
            # Row lock serializes concurrent bookers of the same session
            cursor.execute(
                "SELECT id, capacity FROM class_sessions WHERE id = %s FOR UPDATE",
                (booking.session_id,),
            )
            session_row = cursor.fetchone()
            if not session_row:
                raise SessionNotFound()

            capacity = session_row["capacity"]
            if capacity is not None:
                cursor.execute(
                    f"""
                    SELECT COUNT(*) AS booked FROM class_bookings
                    WHERE session_id = %s AND status IN ({_placeholders(_OCCUPYING)})
                    """,
                    [booking.session_id] + _OCCUPYING,
                )
                if cursor.fetchone()["booked"] >= capacity:
                    return False

            try:
                cursor.execute(
                    """
                    INSERT INTO class_bookings (id, user_id, session_id, status, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        booking.id, booking.user_id, booking.session_id,
                        booking.status.value, _to_db(booking.created_at),
                    ),
                )
            except pymysql.err.IntegrityError as e:
                if e.args and e.args[0] == MYSQL_DUPLICATE_ENTRY:
                    raise DuplicateBooking() from e
                raise
        return True

    def update_booking_status(self, booking_id, expected, new_status):
        expected_values = [s.value for s in expected]
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                f"""
                UPDATE class_bookings SET status = %s, updated_at = UTC_TIMESTAMP()
                WHERE id = %s AND status IN ({_placeholders(expected_values)})
                """,
                [new_status.value, booking_id] + expected_values,
            )
            return cursor.rowcount > 0

    def count_attended_since(self, user_id, since):
        query = "SELECT COUNT(*) AS total FROM class_bookings WHERE user_id = %s AND status = 'attended'"
        params = [user_id]
        if since is not None:
            query += " AND created_at > %s"
            params.append(_to_db(since))
        with self._cursor() as cursor:
            cursor.execute(query, params)
            return int(cursor.fetchone()["total"])

    def mark_no_shows(self, ended_before):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                UPDATE class_bookings cb
                JOIN class_sessions cs ON cb.session_id = cs.id
                SET cb.status = 'no_show', cb.updated_at = UTC_TIMESTAMP()
                WHERE cb.status IN ('booked', 'confirmed') AND cs.end_time < %s
                """,
                (_to_db(ended_before),),
            )
            return cursor.rowcount

    # ---- memberships ----

    def has_valid_membership(self, user_id, now):
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, status, payment_status, start_date, end_date
                FROM user_memberships
                WHERE user_id = %s AND status = 'active' AND payment_status = 'paid'
                ORDER BY end_date DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return row is not None and _membership_from_row(row).is_valid(now)

    def expire_memberships(self, now):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                UPDATE user_memberships
                SET status = 'expired', updated_at = UTC_TIMESTAMP()
                WHERE status = 'active' AND end_date < %s
                """,
                (_to_db(now),),
            )
            return cursor.rowcount

    # ---- check-ins ----

    def insert_check_in(self, check_in):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                INSERT INTO check_ins (id, user_id, check_in_time, check_out_time, duration_minutes, created_at)
                VALUES (%s, %s, %s, %s, %s, UTC_TIMESTAMP())
                """,
                (
                    check_in.id, check_in.user_id, _to_db(check_in.check_in_time),
                    _to_db(check_in.check_out_time), check_in.duration_minutes,
                ),
            )

    def latest_open_check_in(self, user_id):
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {CHECK_IN_COLUMNS} FROM check_ins
                WHERE user_id = %s AND check_out_time IS NULL
                ORDER BY check_in_time DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return _check_in_from_row(row) if row else None

    def close_check_in(self, check_in_id, check_out_time, duration_minutes):
        with self._cursor(commit=True) as cursor:
            cursor.execute(
                """
                UPDATE check_ins SET check_out_time = %s, duration_minutes = %s
                WHERE id = %s AND check_out_time IS NULL
                """,
                (_to_db(check_out_time), duration_minutes, check_in_id),
            )
            return cursor.rowcount > 0

    def list_check_ins_since(self, user_id, since, limit=None):
        query = f"SELECT {CHECK_IN_COLUMNS} FROM check_ins WHERE user_id = %s"
        params = [user_id]
        if since is not None:
            query += " AND check_in_time > %s"
            params.append(_to_db(since))
        query += " ORDER BY check_in_time DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        with self._cursor() as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [_check_in_from_row(row) for row in rows]

    # ---- reward claims ----

    def latest_reward_claim(self, user_id):
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, claimed_at, reward_type, qr_timestamp, qr_session_id
                FROM reward_claims
                WHERE user_id = %s
                ORDER BY claimed_at DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return _claim_from_row(row) if row else None

    def get_reward_claim(self, user_id, qr_timestamp, qr_session_id):
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, claimed_at, reward_type, qr_timestamp, qr_session_id
                FROM reward_claims
                WHERE user_id = %s AND qr_timestamp = %s AND qr_session_id = %s
                """,
                (user_id, qr_timestamp, qr_session_id),
            )
            row = cursor.fetchone()
        return _claim_from_row(row) if row else None

    def insert_reward_claim(self, claim):
        with self._cursor(commit=True) as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO reward_claims
                    (id, user_id, claimed_at, reward_type, qr_timestamp, qr_session_id, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, UTC_TIMESTAMP())
                    """,
                    (
                        claim.id, claim.user_id, _to_db(claim.claimed_at),
                        claim.reward_type.value, claim.qr_timestamp, claim.qr_session_id,
                    ),
                )
            except pymysql.err.IntegrityError as e:
                if e.args and e.args[0] == MYSQL_DUPLICATE_ENTRY:
                    raise AlreadyClaimed() from e
                raise

    # ---- coupons ----

    def find_valid_coupon(self, code, now):
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT c.id, c.code, c.type, c.value, c.description
                FROM coupon_codes c
                WHERE c.code = %s
                  AND c.is_active = 1
                  AND c.valid_from <= %s
                  AND (c.valid_until IS NULL OR c.valid_until >= %s)
                  AND (
                      c.usage_limit IS NULL
                      OR (SELECT COUNT(*) FROM coupon_usage cu WHERE cu.coupon_id = c.id) < c.usage_limit
                  )
                """,
                (code, _to_db(now), _to_db(now)),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return Coupon(
            id=row["id"],
            code=row["code"],
            type=row["type"],
            value=float(row["value"]),
            description=row["description"],
        )


_store: Optional[BookingStore] = None


def get_store() -> BookingStore:
    """FastAPI dependency returning the process-wide store."""
    global _store
    if _store is None:
        _store = MySQLStore()
    return _store
