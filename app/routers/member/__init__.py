from fastapi import APIRouter

router = APIRouter(prefix="/api/member")

from . import classes, checkins, rewards, coupons

router.include_router(classes.router)
router.include_router(checkins.router)
router.include_router(rewards.router)
router.include_router(coupons.router)
