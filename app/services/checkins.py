"""
Check-in / Reward Claim Protocol

Turns a scanned QR token into a durable record:
    entry  -> new open check-in
    exit   -> closes the member's most recent open check-in
    reward -> one reward claim per displayed code
"""
import logging
from typing import Callable, Optional, Union

from app.config import QR_SIGNING_REQUIRED, QR_SIGNING_SECRET, QR_TOKEN_MAX_AGE_MS
from app.errors import (
    AlreadyClaimed,
    GoalNotReached,
    NoOpenCheckIn,
    TokenExpired,
    TokenMalformed,
    TokenUserMismatch,
)
from app.models import CheckIn, QRAction, RewardClaim, RewardType
from app.services.rewards import RewardProgressTracker
from app.store import BookingStore
from app.utils import qr_token
from app.utils.helpers import new_id, to_epoch_ms, utc_now
from app.utils.qr_token import QRToken

logger = logging.getLogger(__name__)


class CheckInProtocol:
    def __init__(
        self,
        store: BookingStore,
        tracker: Optional[RewardProgressTracker] = None,
        clock: Callable = utc_now,
        max_age_ms: int = QR_TOKEN_MAX_AGE_MS,
        signing_secret: Optional[str] = QR_SIGNING_SECRET,
        require_signature: bool = QR_SIGNING_REQUIRED,
    ):
        self.store = store
        self.tracker = tracker or RewardProgressTracker(store)
        self.clock = clock
        self.max_age_ms = max_age_ms
        self.signing_secret = signing_secret
        self.require_signature = require_signature

    # ============== Token handling ==============

    def parse_token(self, raw: Union[str, bytes]) -> QRToken:
        token = qr_token.parse(raw, secret=self.signing_secret, require_signature=self.require_signature)
        if token is None:
            raise TokenMalformed()
        return token

    def _ensure_live(self, token: QRToken):
        if not qr_token.is_live(token, self.max_age_ms, now_ms=to_epoch_ms(self.clock())):
            raise TokenExpired()

    def _coerce(self, token: Union[QRToken, str, bytes]) -> QRToken:
        return token if isinstance(token, QRToken) else self.parse_token(token)

    # ============== Entry / exit ==============

    def scan(self, raw: Union[QRToken, str, bytes]) -> CheckIn:
        """Redeem an entry or exit token at the scanning device."""
        token = self._coerce(raw)
        if token.action is QRAction.ENTRY:
            return self.check_in(token)
        if token.action is QRAction.EXIT:
            return self.check_out(token)
        raise TokenMalformed("Reward codes are claimed from the rewards page")

    def check_in(self, token: QRToken) -> CheckIn:
        if token.action is not QRAction.ENTRY:
            raise TokenMalformed("This QR code is not for check-in")
        self._ensure_live(token)

        now = self.clock()
        open_check_in = self.store.latest_open_check_in(token.user_id)
        if open_check_in is not None:
            # Allowed; staff can close the stale one by hand
            logger.warning(
                f"User {token.user_id} checked in again with check-in {open_check_in.id} still open"
            )

        check_in = CheckIn(id=new_id(), user_id=token.user_id, check_in_time=now)
        self.store.insert_check_in(check_in)
        logger.info(f"Check-in {check_in.id} opened for user {token.user_id}")
        return check_in

    def check_out(self, token: QRToken) -> CheckIn:
        if token.action is not QRAction.EXIT:
            raise TokenMalformed("This QR code is not for check-out")
        self._ensure_live(token)

        open_check_in = self.store.latest_open_check_in(token.user_id)
        if open_check_in is None:
            raise NoOpenCheckIn()

        now = self.clock()
        duration_minutes = int((now - open_check_in.check_in_time).total_seconds() // 60)
        if not self.store.close_check_in(open_check_in.id, now, duration_minutes):
            # Closed by a concurrent exit scan
            raise NoOpenCheckIn()

        logger.info(f"Check-in {open_check_in.id} closed for user {token.user_id} after {duration_minutes} min")
        return open_check_in.model_copy(
            update={"check_out_time": now, "duration_minutes": duration_minutes}
        )

    # ============== Reward ==============

    def claim_reward(
        self,
        raw: Union[QRToken, str, bytes],
        caller_id: str,
        reward_type: RewardType = RewardType.FREE_DRINK,
    ) -> RewardClaim:
        """
        Redeem a reward token for its owner.

        Order: liveness, ownership, goals, then the unique insert. A code
        that was already redeemed reports AlreadyClaimed even though the first
        claim has reset the member's progress, including when that
        claim lands between the claim-key read and the goal check.
        """
        token = self._coerce(raw)
        if token.action is not QRAction.REWARD:
            raise TokenMalformed("Invalid QR code type. This QR code is not for rewards.")

        self._ensure_live(token)

        if token.user_id != caller_id:
            raise TokenUserMismatch()

        if self.store.get_reward_claim(caller_id, token.timestamp, token.salt) is not None:
            raise AlreadyClaimed()

        try:
            self.tracker.ensure_eligible(caller_id)
        except GoalNotReached:
            # A concurrent redemption of this token may have reset progress
            if self.store.get_reward_claim(caller_id, token.timestamp, token.salt) is not None:
                raise AlreadyClaimed()
            raise

        claim = RewardClaim(
            id=new_id(),
            user_id=caller_id,
            claimed_at=self.clock(),
            reward_type=reward_type,
            qr_timestamp=token.timestamp,
            qr_session_id=token.salt,
        )
        # The unique key decides between concurrent redemptions
        self.store.insert_reward_claim(claim)
        logger.info(f"Reward {reward_type.value} claimed by user {caller_id} (claim {claim.id})")
        return claim
