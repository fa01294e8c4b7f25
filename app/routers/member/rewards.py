"""
Member Rewards Router - Progress towards the free drink and reward claims
"""
import logging
import uuid
from typing import Callable

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.dependencies import (
    get_checkin_protocol,
    get_claim_limiter,
    get_clock,
    get_reward_tracker,
)
from app.middleware import verify_bearer_token
from app.models import QRAction, RewardType
from app.routers.member.checkins import build_qr_payload
from app.services.checkins import CheckInProtocol
from app.services.rewards import RewardProgressTracker
from app.utils import qr_token
from app.utils.helpers import to_epoch_ms
from app.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rewards", tags=["Member - Rewards"])


# ============== Request Models ==============

class ClaimRewardRequest(BaseModel):
    qr_data: str = Field(..., min_length=1, max_length=2048)
    reward_type: RewardType = RewardType.FREE_DRINK


# ============== Endpoints ==============

@router.get("/progress")
def get_reward_progress(
    auth: dict = Depends(verify_bearer_token),
    tracker: RewardProgressTracker = Depends(get_reward_tracker),
):
    """Hours and classes since the caller's last reward claim"""
    progress = tracker.get_progress(auth["user_id"])

    return {
        "success": True,
        "data": {
            "hours": progress.display_hours,
            "hours_target": progress.hours_target,
            "hours_goal_reached": progress.hours_goal_reached,
            "classes": progress.classes_attended_since_last_claim,
            "classes_target": progress.classes_target,
            "classes_goal_reached": progress.classes_goal_reached,
            "is_eligible": progress.is_eligible,
            "last_claim_time": progress.last_claim_time.isoformat() if progress.last_claim_time else None,
        },
    }


@router.get("/qr")
def get_reward_qr(
    include_image: bool = Query(True),
    auth: dict = Depends(verify_bearer_token),
    tracker: RewardProgressTracker = Depends(get_reward_tracker),
    clock: Callable = Depends(get_clock),
):
    """Generate a reward QR code. Only available once both goals are reached."""
    user_id = auth["user_id"]
    tracker.ensure_eligible(user_id)

    token = qr_token.issue(
        user_id,
        QRAction.REWARD,
        session_salt=uuid.uuid4().hex[:12],
        now_ms=to_epoch_ms(clock()),
    )
    return {"success": True, "data": build_qr_payload(token, include_image)}


@router.post("/claim")
def claim_reward(
    request: ClaimRewardRequest,
    auth: dict = Depends(verify_bearer_token),
    protocol: CheckInProtocol = Depends(get_checkin_protocol),
    limiter: RateLimiter = Depends(get_claim_limiter),
):
    """Redeem a reward QR code"""
    user_id = auth["user_id"]
    limiter.check(f"claim:{user_id}")

    claim = protocol.claim_reward(request.qr_data, user_id, request.reward_type)

    return {
        "success": True,
        "message": "Reward claimed. Enjoy!",
        "data": claim.model_dump(mode="json"),
    }
