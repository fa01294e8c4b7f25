"""
Domain models for sessions, bookings, memberships, check-ins and reward claims
"""
import math
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator


# ============== Enumerations ==============

class BookingStatus(str, Enum):
    BOOKED = "booked"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return not BOOKING_TRANSITIONS[self]

    @property
    def occupies_slot(self) -> bool:
        return self in OCCUPYING_STATUSES

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in BOOKING_TRANSITIONS[self]


BOOKING_TRANSITIONS = {
    BookingStatus.BOOKED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.ATTENDED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.ATTENDED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.ATTENDED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

# Attended bookings keep holding the slot they were booked into
OCCUPYING_STATUSES = frozenset({
    BookingStatus.BOOKED,
    BookingStatus.CONFIRMED,
    BookingStatus.ATTENDED,
})


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class QRAction(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"
    REWARD = "reward"


class RewardType(str, Enum):
    FREE_DRINK = "free_drink"
    OTHER = "other"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    MONEY_OFF = "money_off"


# ============== Entities ==============

class ClassSession(BaseModel):
    id: str
    name: str
    instructor: Optional[str] = None
    start_time: datetime
    end_time: datetime
    capacity: Optional[int] = Field(None, gt=0)
    class_id: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def is_unlimited(self) -> bool:
        return self.capacity is None

    def hours_until_start(self, now: datetime) -> float:
        return (self.start_time - now).total_seconds() / 3600


class Booking(BaseModel):
    id: str
    user_id: str
    session_id: str
    status: BookingStatus = BookingStatus.BOOKED
    created_at: datetime


class Membership(BaseModel):
    id: str
    user_id: str
    status: MembershipStatus
    payment_status: PaymentStatus
    start_date: datetime
    end_date: datetime

    def is_valid(self, now: datetime) -> bool:
        return (
            self.status is MembershipStatus.ACTIVE
            and self.payment_status is PaymentStatus.PAID
            and self.end_date >= now
        )


class CheckIn(BaseModel):
    id: str
    user_id: str
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    @property
    def duration_hours(self) -> float:
        if self.check_out_time is None:
            return 0.0
        return (self.check_out_time - self.check_in_time).total_seconds() / 3600


class RewardClaim(BaseModel):
    id: str
    user_id: str
    claimed_at: datetime
    reward_type: RewardType = RewardType.FREE_DRINK
    qr_timestamp: int
    qr_session_id: str = ""


class Coupon(BaseModel):
    id: str
    code: str
    type: CouponType
    value: float = Field(..., gt=0)
    description: Optional[str] = None


# ============== Projections ==============

class Occupancy(BaseModel):
    session_id: str
    capacity: Optional[int] = None
    booked_count: int = 0
    # math.inf when the session has no capacity limit
    available_count: Union[int, float]

    @property
    def has_room(self) -> bool:
        return self.available_count > 0

    def to_public(self) -> dict:
        # JSON has no infinity; unlimited sessions report null
        return {
            "capacity": self.capacity,
            "booked_count": self.booked_count,
            "available_count": None if self.capacity is None else int(self.available_count),
            "is_full": not self.has_room,
        }

    @classmethod
    def compute(cls, session_id: str, capacity: Optional[int], booked_count: int) -> "Occupancy":
        if capacity is None:
            available = math.inf
        else:
            available = max(0, capacity - booked_count)
        return cls(
            session_id=session_id,
            capacity=capacity,
            booked_count=booked_count,
            available_count=available,
        )


class RewardProgress(BaseModel):
    user_id: str
    hours_since_last_claim: float
    classes_attended_since_last_claim: int
    last_claim_time: Optional[datetime] = None
    hours_target: float
    classes_target: int

    @property
    def display_hours(self) -> float:
        # Truncated, never rounded up, so 14.96h does not display as 15.0
        return math.floor(self.hours_since_last_claim * 10) / 10

    @property
    def hours_goal_reached(self) -> bool:
        return self.hours_since_last_claim >= self.hours_target

    @property
    def classes_goal_reached(self) -> bool:
        return self.classes_attended_since_last_claim >= self.classes_target

    @property
    def is_eligible(self) -> bool:
        return self.hours_goal_reached and self.classes_goal_reached
