"""
Coupon validation and discount calculation for membership checkout
"""
import re
from typing import Callable, Optional

from app.models import Coupon, CouponType
from app.store import BookingStore
from app.utils.helpers import utc_now

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{1,50}$")


def normalize_code(code: str) -> Optional[str]:
    """Upper-case and trim a code; None when it cannot be a valid code."""
    normalized = (code or "").strip().upper()
    if not COUPON_CODE_PATTERN.match(normalized):
        return None
    return normalized


def apply_discount(price: float, coupon: Coupon) -> float:
    if coupon.type is CouponType.PERCENTAGE:
        discounted = price * (1 - min(coupon.value, 100) / 100)
    else:
        discounted = price - coupon.value
    return round(max(0.0, discounted), 2)


class CouponService:
    def __init__(self, store: BookingStore, clock: Callable = utc_now):
        self.store = store
        self.clock = clock

    def validate(self, code: str) -> Optional[Coupon]:
        normalized = normalize_code(code)
        if normalized is None:
            return None
        return self.store.find_valid_coupon(normalized, self.clock())
