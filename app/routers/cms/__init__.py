from fastapi import APIRouter

router = APIRouter(prefix="/api/cms")

from . import sessions, bookings, checkins

router.include_router(sessions.router)
router.include_router(bookings.router)
router.include_router(checkins.router)
