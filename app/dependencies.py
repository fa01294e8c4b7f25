"""
FastAPI dependency providers for services.

Routers take services through ``Depends`` so tests can swap the store, the
clock and the rate limiters with ``app.dependency_overrides``.
"""
from typing import Callable

from fastapi import Depends

from app.config import BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS
from app.services.bookings import BookingEngine
from app.services.capacity import CapacityOracle
from app.services.checkins import CheckInProtocol
from app.services.coupons import CouponService
from app.services.rewards import RewardProgressTracker
from app.services.sessions import SessionScheduler
from app.store import BookingStore, get_store
from app.utils.helpers import utc_now
from app.utils.rate_limit import RateLimiter

_booking_limiter = RateLimiter(BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS)
_claim_limiter = RateLimiter(BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS)


def get_clock() -> Callable:
    return utc_now


def get_booking_limiter() -> RateLimiter:
    return _booking_limiter


def get_claim_limiter() -> RateLimiter:
    return _claim_limiter


def get_capacity_oracle(store: BookingStore = Depends(get_store)) -> CapacityOracle:
    return CapacityOracle(store)


def get_booking_engine(
    store: BookingStore = Depends(get_store),
    clock: Callable = Depends(get_clock),
) -> BookingEngine:
    return BookingEngine(store, clock=clock)


def get_session_scheduler(store: BookingStore = Depends(get_store)) -> SessionScheduler:
    return SessionScheduler(store)


def get_reward_tracker(store: BookingStore = Depends(get_store)) -> RewardProgressTracker:
    return RewardProgressTracker(store)


def get_checkin_protocol(
    store: BookingStore = Depends(get_store),
    clock: Callable = Depends(get_clock),
    tracker: RewardProgressTracker = Depends(get_reward_tracker),
) -> CheckInProtocol:
    return CheckInProtocol(store, tracker=tracker, clock=clock)


def get_coupon_service(
    store: BookingStore = Depends(get_store),
    clock: Callable = Depends(get_clock),
) -> CouponService:
    return CouponService(store, clock=clock)
