"""
Member Classes Router - Class sessions and booking for members
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field

from app.dependencies import (
    get_booking_engine,
    get_booking_limiter,
    get_capacity_oracle,
    get_clock,
)
from app.errors import SessionNotFound
from app.middleware import verify_bearer_token
from app.services.bookings import BookingEngine
from app.services.capacity import CapacityOracle
from app.store import BookingStore, get_store
from app.utils.notify import send_booking_cancellation, send_booking_confirmation
from app.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/classes", tags=["Member - Classes"])


# ============== Request Models ==============

class BookSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)


# ============== Helper Functions ==============

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_with_occupancy(session, occupancy) -> dict:
    data = session.model_dump(mode="json")
    if occupancy is not None:
        data.update(occupancy.to_public())
    return data


# ============== Endpoints ==============

@router.get("/sessions")
def list_sessions(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    auth: dict = Depends(verify_bearer_token),
    store: BookingStore = Depends(get_store),
    oracle: CapacityOracle = Depends(get_capacity_oracle),
    clock: Callable = Depends(get_clock),
):
    """List upcoming class sessions with their remaining places (default: next 7 days)"""
    start_from = _as_utc(date_from) or clock()
    start_to = _as_utc(date_to) or start_from + timedelta(days=7)

    sessions = store.list_sessions(start_from, start_to)
    occupancy = oracle.get_occupancy(s.id for s in sessions)

    return {
        "success": True,
        "data": [_session_with_occupancy(s, occupancy.get(s.id)) for s in sessions],
    }


@router.get("/sessions/{session_id}")
def get_session_detail(
    session_id: str,
    auth: dict = Depends(verify_bearer_token),
    store: BookingStore = Depends(get_store),
    oracle: CapacityOracle = Depends(get_capacity_oracle),
):
    """Get a single class session with occupancy"""
    session = store.get_session(session_id)
    if session is None:
        raise SessionNotFound()

    occupancy = oracle.get_occupancy([session_id]).get(session_id)
    return {"success": True, "data": _session_with_occupancy(session, occupancy)}


@router.post("/book")
def book_session(
    request: BookSessionRequest,
    background_tasks: BackgroundTasks,
    auth: dict = Depends(verify_bearer_token),
    store: BookingStore = Depends(get_store),
    engine: BookingEngine = Depends(get_booking_engine),
    limiter: RateLimiter = Depends(get_booking_limiter),
):
    """Book a place in a class session"""
    user_id = auth["user_id"]
    limiter.check(f"book:{user_id}")

    booking = engine.create_booking(user_id, request.session_id)

    if auth.get("email"):
        session = store.get_session(booking.session_id)
        if session is not None:
            background_tasks.add_task(send_booking_confirmation, auth["email"], session)

    return {
        "success": True,
        "message": "Class booked successfully",
        "data": booking.model_dump(mode="json"),
    }


@router.delete("/book/{booking_id}")
def cancel_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    auth: dict = Depends(verify_bearer_token),
    store: BookingStore = Depends(get_store),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Cancel one of your bookings (allowed until the cancellation window)"""
    booking = engine.cancel_booking(auth["user_id"], booking_id)

    if auth.get("email"):
        session = store.get_session(booking.session_id)
        if session is not None:
            background_tasks.add_task(send_booking_cancellation, auth["email"], session)

    return {
        "success": True,
        "message": "Booking cancelled",
        "data": booking.model_dump(mode="json"),
    }


@router.get("/my-bookings")
def get_my_bookings(
    auth: dict = Depends(verify_bearer_token),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """List the caller's bookings, newest first, with their sessions"""
    rows = engine.list_user_bookings(auth["user_id"])

    data = []
    for booking, session in rows:
        item = booking.model_dump(mode="json")
        item["session"] = session.model_dump(mode="json") if session else None
        data.append(item)

    return {"success": True, "data": data}
