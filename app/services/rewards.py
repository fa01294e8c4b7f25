"""
Reward Progress Tracker - hours and classes since the member's last claim
"""
import logging

from app.config import REWARD_CLASSES_TARGET, REWARD_HOURS_TARGET
from app.errors import GoalNotReached
from app.models import RewardProgress
from app.store import BookingStore

logger = logging.getLogger(__name__)


class RewardProgressTracker:
    def __init__(
        self,
        store: BookingStore,
        hours_target: float = REWARD_HOURS_TARGET,
        classes_target: int = REWARD_CLASSES_TARGET,
    ):
        self.store = store
        self.hours_target = hours_target
        self.classes_target = classes_target

    def get_progress(self, user_id: str) -> RewardProgress:
        """
        Count completed gym time and attended classes after the most recent
        reward claim (or ever, when the member has never claimed).
        Open check-ins do not count until they are closed.
        """
        last_claim = self.store.latest_reward_claim(user_id)
        since = last_claim.claimed_at if last_claim else None

        check_ins = self.store.list_check_ins_since(user_id, since)
        hours = sum(c.duration_hours for c in check_ins if not c.is_open)
        classes = self.store.count_attended_since(user_id, since)

        return RewardProgress(
            user_id=user_id,
            hours_since_last_claim=hours,
            classes_attended_since_last_claim=classes,
            last_claim_time=since,
            hours_target=self.hours_target,
            classes_target=self.classes_target,
        )

    def ensure_eligible(self, user_id: str) -> RewardProgress:
        progress = self.get_progress(user_id)
        if not progress.is_eligible:
            raise GoalNotReached(
                f"{progress.display_hours}/{progress.hours_target:g} hours, "
                f"{progress.classes_attended_since_last_claim}/{progress.classes_target} classes"
            )
        return progress
