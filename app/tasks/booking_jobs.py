"""
Booking and membership cron jobs:
  1. Mark bookings as no-show once their session has ended
  2. Mark expired memberships
  3. Drop expired rate limit windows
"""
import logging
from datetime import timedelta
from typing import Iterable, Optional

from app.config import NO_SHOW_GRACE_MINUTES
from app.dependencies import get_booking_limiter, get_claim_limiter
from app.store import BookingStore, get_store
from app.utils.helpers import utc_now
from app.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# 1. NO-SHOW
# ─────────────────────────────────────────────
def job_mark_no_shows(store: Optional[BookingStore] = None, now=None) -> int:
    """
    Bookings still 'booked' or 'confirmed' whose session ended more than
    NO_SHOW_GRACE_MINUTES ago -> 'no_show'.
    """
    store = store or get_store()
    cutoff = (now or utc_now()) - timedelta(minutes=NO_SHOW_GRACE_MINUTES)
    try:
        affected = store.mark_no_shows(cutoff)
        logger.info("No-show job done - %d bookings marked as no_show", affected)
        return affected
    except Exception as e:
        logger.error("Error in job_mark_no_shows: %s", e, exc_info=True)
        return 0


# ─────────────────────────────────────────────
# 2. EXPIRE MEMBERSHIPS
# ─────────────────────────────────────────────
def job_expire_memberships(store: Optional[BookingStore] = None, now=None) -> int:
    """
    Memberships with end_date in the past and status still 'active'
    -> 'expired'.
    """
    store = store or get_store()
    try:
        affected = store.expire_memberships(now or utc_now())
        logger.info("Expire job done - %d memberships marked as expired", affected)
        return affected
    except Exception as e:
        logger.error("Error in job_expire_memberships: %s", e, exc_info=True)
        return 0


# ─────────────────────────────────────────────
# 3. PURGE RATE LIMIT WINDOWS
# ─────────────────────────────────────────────
def job_purge_rate_limits(limiters: Optional[Iterable[RateLimiter]] = None) -> int:
    """Drop expired windows from the booking and claim limiters."""
    if limiters is None:
        limiters = (get_booking_limiter(), get_claim_limiter())
    purged = sum(limiter.purge_expired() for limiter in limiters)
    logger.info("Rate limit purge done - %d expired windows dropped", purged)
    return purged
