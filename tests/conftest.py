"""
Shared fixtures: an in-memory store with the same uniqueness and
conditional-write rules as schema.sql, a controllable clock, and an API
client wired to both.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_booking_limiter, get_claim_limiter, get_clock
from app.errors import AlreadyClaimed, DuplicateBooking, SessionNotFound
from app.middleware import create_access_token
from app.models import (
    Booking,
    BookingStatus,
    CheckIn,
    ClassSession,
    Coupon,
    CouponType,
    Membership,
    MembershipStatus,
    OCCUPYING_STATUSES,
    PaymentStatus,
    RewardClaim,
)
from app.store import BookingStore, get_store
from app.utils.helpers import new_id
from app.utils.rate_limit import RateLimiter
from main import app


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def monotonic(self) -> float:
        return (self.now - START).total_seconds()


class InMemoryStore(BookingStore):
    def __init__(self):
        self.sessions = {}
        self.bookings = {}
        self.memberships = []
        self.check_ins = {}
        self.claims = []
        self.coupons = []
        self.calls = []
        self._lock = threading.RLock()

    def ping(self):
        pass

    # ---- sessions ----

    def get_session(self, session_id):
        return self.sessions.get(session_id)

    def get_sessions(self, session_ids):
        return {i: self.sessions[i] for i in session_ids if i in self.sessions}

    def list_sessions(self, start_from, start_to):
        found = [s for s in self.sessions.values() if start_from <= s.start_time < start_to]
        return sorted(found, key=lambda s: s.start_time)

    def insert_session(self, session):
        self.sessions[session.id] = session

    def update_session(self, session):
        self.sessions[session.id] = session

    # ---- bookings ----

    def _occupying(self, session_id):
        with self._lock:
            return sum(
                1 for b in self.bookings.values()
                if b.session_id == session_id and b.status in OCCUPYING_STATUSES
            )

    def count_occupying(self, session_ids):
        return {i: self._occupying(i) for i in session_ids}

    def find_active_booking(self, user_id, session_id):
        with self._lock:
            for b in self.bookings.values():
                if b.user_id == user_id and b.session_id == session_id and b.status is not BookingStatus.CANCELLED:
                    return b
        return None

    def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    def list_bookings_for_user(self, user_id):
        found = [b for b in self.bookings.values() if b.user_id == user_id]
        return sorted(found, key=lambda b: b.created_at, reverse=True)

    def list_bookings_for_session(self, session_id):
        found = [b for b in self.bookings.values() if b.session_id == session_id]
        return sorted(found, key=lambda b: b.created_at)

    def insert_booking_checked(self, booking):
        self.calls.append("insert_booking_checked")
        with self._lock:
            session = self.sessions.get(booking.session_id)
            if session is None:
                raise SessionNotFound()
            if session.capacity is not None and self._occupying(session.id) >= session.capacity:
                return False
            if self.find_active_booking(booking.user_id, booking.session_id):
                raise DuplicateBooking()
            self.bookings[booking.id] = booking
            return True

    def update_booking_status(self, booking_id, expected, new_status):
        with self._lock:
            booking = self.bookings.get(booking_id)
            if booking is None or booking.status not in set(expected):
                return False
            self.bookings[booking_id] = booking.model_copy(update={"status": new_status})
            return True

    def count_attended_since(self, user_id, since):
        return sum(
            1 for b in self.bookings.values()
            if b.user_id == user_id
            and b.status is BookingStatus.ATTENDED
            and (since is None or b.created_at > since)
        )

    def mark_no_shows(self, ended_before):
        marked = 0
        for b in list(self.bookings.values()):
            session = self.sessions.get(b.session_id)
            if b.status in (BookingStatus.BOOKED, BookingStatus.CONFIRMED) and session.end_time < ended_before:
                self.bookings[b.id] = b.model_copy(update={"status": BookingStatus.NO_SHOW})
                marked += 1
        return marked

    # ---- memberships ----

    def has_valid_membership(self, user_id, now):
        return any(m.user_id == user_id and m.is_valid(now) for m in self.memberships)

    def expire_memberships(self, now):
        expired = 0
        for i, m in enumerate(self.memberships):
            if m.status is MembershipStatus.ACTIVE and m.end_date < now:
                self.memberships[i] = m.model_copy(update={"status": MembershipStatus.EXPIRED})
                expired += 1
        return expired

    # ---- check-ins ----

    def insert_check_in(self, check_in):
        self.calls.append("insert_check_in")
        self.check_ins[check_in.id] = check_in

    def latest_open_check_in(self, user_id):
        open_ones = [c for c in self.check_ins.values() if c.user_id == user_id and c.is_open]
        return max(open_ones, key=lambda c: c.check_in_time, default=None)

    def close_check_in(self, check_in_id, check_out_time, duration_minutes):
        self.calls.append("close_check_in")
        with self._lock:
            check_in = self.check_ins.get(check_in_id)
            if check_in is None or not check_in.is_open:
                return False
            self.check_ins[check_in_id] = check_in.model_copy(
                update={"check_out_time": check_out_time, "duration_minutes": duration_minutes}
            )
            return True

    def list_check_ins_since(self, user_id, since, limit=None):
        found = [
            c for c in self.check_ins.values()
            if c.user_id == user_id and (since is None or c.check_in_time > since)
        ]
        found.sort(key=lambda c: c.check_in_time, reverse=True)
        return found if limit is None else found[:limit]

    # ---- reward claims ----

    def latest_reward_claim(self, user_id):
        mine = [c for c in self.claims if c.user_id == user_id]
        return max(mine, key=lambda c: c.claimed_at, default=None)

    def get_reward_claim(self, user_id, qr_timestamp, qr_session_id):
        for c in self.claims:
            if (c.user_id, c.qr_timestamp, c.qr_session_id) == (user_id, qr_timestamp, qr_session_id):
                return c
        return None

    def insert_reward_claim(self, claim):
        self.calls.append("insert_reward_claim")
        with self._lock:
            if self.get_reward_claim(claim.user_id, claim.qr_timestamp, claim.qr_session_id):
                raise AlreadyClaimed()
            self.claims.append(claim)

    # ---- coupons ----

    def find_valid_coupon(self, code, now):
        for coupon, valid_until in self.coupons:
            if coupon.code == code and (valid_until is None or valid_until >= now):
                return coupon
        return None

    # ---- seeding helpers ----

    def add_membership(self, user_id, now, status=MembershipStatus.ACTIVE, payment_status=PaymentStatus.PAID, days=30):
        membership = Membership(
            id=new_id(),
            user_id=user_id,
            status=status,
            payment_status=payment_status,
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=days),
        )
        self.memberships.append(membership)
        return membership

    def add_session(self, start_time, capacity=20, duration_minutes=60, name="Morning Yoga"):
        session = ClassSession(
            id=new_id(),
            name=name,
            instructor="Dewi",
            start_time=start_time,
            end_time=start_time + timedelta(minutes=duration_minutes),
            capacity=capacity,
        )
        self.insert_session(session)
        return session

    def add_booking(self, user_id, session_id, created_at, status=BookingStatus.BOOKED):
        booking = Booking(id=new_id(), user_id=user_id, session_id=session_id, status=status, created_at=created_at)
        self.bookings[booking.id] = booking
        return booking

    def add_visit(self, user_id, check_in_time, minutes):
        check_in = CheckIn(
            id=new_id(),
            user_id=user_id,
            check_in_time=check_in_time,
            check_out_time=check_in_time + timedelta(minutes=minutes),
            duration_minutes=int(minutes),
        )
        self.check_ins[check_in.id] = check_in
        return check_in

    def add_claim(self, user_id, claimed_at, qr_timestamp=1, qr_session_id=""):
        claim = RewardClaim(
            id=new_id(), user_id=user_id, claimed_at=claimed_at,
            qr_timestamp=qr_timestamp, qr_session_id=qr_session_id,
        )
        self.claims.append(claim)
        return claim

    def add_coupon(self, code, type=CouponType.PERCENTAGE, value=10, valid_until=None):
        coupon = Coupon(id=new_id(), code=code, type=type, value=value)
        self.coupons.append((coupon, valid_until))
        return coupon


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def member_id():
    return "member-1"


@pytest.fixture
def member_headers(member_id):
    token = create_access_token({"user_id": member_id, "email": None, "role_name": "member"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    token = create_access_token({"user_id": "admin-1", "email": None, "role_name": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(store, clock):
    booking_limiter = RateLimiter(5, 60, clock=clock.monotonic)
    claim_limiter = RateLimiter(5, 60, clock=clock.monotonic)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_booking_limiter] = lambda: booking_limiter
    app.dependency_overrides[get_claim_limiter] = lambda: claim_limiter
    try:
        # Not used as a context manager, so the lifespan scheduler never starts
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
