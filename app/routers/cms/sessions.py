"""
CMS Sessions Router - Admin scheduling of class sessions
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.dependencies import (
    get_booking_engine,
    get_capacity_oracle,
    get_clock,
    get_session_scheduler,
)
from app.middleware import require_admin
from app.services.bookings import BookingEngine
from app.services.capacity import CapacityOracle
from app.services.sessions import SessionScheduler
from app.store import BookingStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["CMS - Sessions"])


# ============== Request Models ==============

class SessionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_time: datetime
    end_time: datetime
    capacity: Optional[int] = None
    instructor: Optional[str] = Field(None, max_length=100)
    class_id: Optional[str] = None


class SessionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    capacity: Optional[int] = None
    instructor: Optional[str] = Field(None, max_length=100)
    class_id: Optional[str] = None


# ============== Helper Functions ==============

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============== Endpoints ==============

@router.get("")
def list_sessions(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    auth: dict = Depends(require_admin),
    store: BookingStore = Depends(get_store),
    oracle: CapacityOracle = Depends(get_capacity_oracle),
    clock: Callable = Depends(get_clock),
):
    """List sessions in a date range (default: today and the next 7 days)"""
    start_from = _as_utc(date_from) or clock().replace(hour=0, minute=0, second=0, microsecond=0)
    start_to = _as_utc(date_to) or start_from + timedelta(days=8)

    sessions = store.list_sessions(start_from, start_to)
    occupancy = oracle.get_occupancy(s.id for s in sessions)

    data = []
    for session in sessions:
        item = session.model_dump(mode="json")
        item.update(occupancy[session.id].to_public())
        data.append(item)

    return {"success": True, "data": data}


@router.post("")
def create_session(
    request: SessionCreate,
    auth: dict = Depends(require_admin),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
):
    """Schedule a new class session"""
    session = scheduler.schedule(
        name=request.name,
        start_time=_as_utc(request.start_time),
        end_time=_as_utc(request.end_time),
        capacity=request.capacity,
        instructor=request.instructor,
        class_id=request.class_id,
    )
    logger.info(f"Session {session.id} created by admin {auth['user_id']}")

    return {
        "success": True,
        "message": "Session created successfully",
        "data": session.model_dump(mode="json"),
    }


@router.put("/{session_id}")
def update_session(
    session_id: str,
    request: SessionUpdate,
    auth: dict = Depends(require_admin),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
):
    """Update a class session. Omitted fields are left unchanged."""
    changes = request.model_dump(exclude_unset=True)
    for field in ("start_time", "end_time"):
        if changes.get(field) is not None:
            changes[field] = _as_utc(changes[field])

    session = scheduler.update(session_id, **changes)

    return {
        "success": True,
        "message": "Session updated successfully",
        "data": session.model_dump(mode="json"),
    }


@router.get("/{session_id}/bookings")
def get_session_bookings(
    session_id: str,
    auth: dict = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """List every booking for a session, including cancelled ones"""
    bookings = engine.list_session_bookings(session_id)
    return {"success": True, "data": [b.model_dump(mode="json") for b in bookings]}
