"""
CMS Bookings Router - Attendance and confirmation of member bookings
"""
import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_booking_engine
from app.middleware import require_admin
from app.services.bookings import BookingEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["CMS - Bookings"])


def _response(booking, message: str) -> dict:
    return {"success": True, "message": message, "data": booking.model_dump(mode="json")}


@router.put("/{booking_id}/confirm")
def confirm_booking(
    booking_id: str,
    auth: dict = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    booking = engine.confirm_booking(booking_id)
    logger.info(f"Booking {booking_id} confirmed by admin {auth['user_id']}")
    return _response(booking, "Booking confirmed")


@router.put("/{booking_id}/attended")
def mark_attended(
    booking_id: str,
    auth: dict = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    booking = engine.mark_attended(booking_id)
    logger.info(f"Booking {booking_id} marked attended by admin {auth['user_id']}")
    return _response(booking, "Attendance recorded")


@router.put("/{booking_id}/no-show")
def mark_no_show(
    booking_id: str,
    auth: dict = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    booking = engine.mark_no_show(booking_id)
    logger.info(f"Booking {booking_id} marked no-show by admin {auth['user_id']}")
    return _response(booking, "Booking marked as no-show")


@router.get("/user/{user_id}")
def get_user_bookings(
    user_id: str,
    auth: dict = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """List a member's bookings with their sessions"""
    data = []
    for booking, session in engine.list_user_bookings(user_id):
        item = booking.model_dump(mode="json")
        item["session"] = session.model_dump(mode="json") if session else None
        data.append(item)
    return {"success": True, "data": data}
