"""
Reward progress and reward claims
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.errors import (
    AlreadyClaimed,
    GoalNotReached,
    TokenExpired,
    TokenMalformed,
    TokenUserMismatch,
)
from app.models import BookingStatus, RewardType
from app.services.checkins import CheckInProtocol
from app.services.rewards import RewardProgressTracker
from app.utils import qr_token
from app.utils.helpers import to_epoch_ms

SECRET = "test-secret"


@pytest.fixture
def tracker(store):
    return RewardProgressTracker(store, hours_target=15, classes_target=15)


@pytest.fixture
def protocol(store, clock, tracker):
    return CheckInProtocol(store, tracker=tracker, clock=clock, signing_secret=SECRET, require_signature=False)


def _earn(store, clock, user_id, minutes, classes):
    store.add_visit(user_id, clock() - timedelta(days=2), minutes)
    session = store.add_session(clock() - timedelta(days=1))
    for _ in range(classes):
        store.add_booking(user_id, session.id, clock() - timedelta(days=1), status=BookingStatus.ATTENDED)


def _reward_token(clock, user_id, salt="a1b2c3", age_ms=0):
    token = qr_token.issue(
        user_id, "reward", session_salt=salt, now_ms=to_epoch_ms(clock()) - age_ms, secret=SECRET
    )
    return qr_token.encode(token)


# ============== progress ==============

def test_progress_just_short_of_hours(tracker, store, clock, member_id):
    _earn(store, clock, member_id, minutes=894, classes=16)

    progress = tracker.get_progress(member_id)

    assert progress.display_hours == 14.9
    assert not progress.hours_goal_reached
    assert progress.classes_goal_reached
    assert not progress.is_eligible
    with pytest.raises(GoalNotReached) as exc_info:
        tracker.ensure_eligible(member_id)
    assert exc_info.value.detail == "14.9/15 hours, 16/15 classes"


def test_progress_exactly_at_targets(tracker, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)

    progress = tracker.get_progress(member_id)
    assert progress.hours_since_last_claim == 15.0
    assert progress.is_eligible


def test_display_hours_truncates(tracker, store, clock, member_id):
    # 14.96 hours must not display as 15.0
    store.add_visit(member_id, clock() - timedelta(days=1), 897.6)
    assert tracker.get_progress(member_id).display_hours == 14.9


def test_open_check_ins_do_not_count(tracker, store, clock, member_id, protocol):
    protocol.scan(qr_token.encode(qr_token.issue(member_id, "entry", now_ms=to_epoch_ms(clock()), secret=SECRET)))
    clock.advance(hours=20)

    assert tracker.get_progress(member_id).hours_since_last_claim == 0


def test_progress_counts_only_after_last_claim(tracker, store, clock, member_id):
    _earn(store, clock, member_id, minutes=1200, classes=20)
    store.add_claim(member_id, clock() - timedelta(hours=12))
    store.add_visit(member_id, clock() - timedelta(hours=6), 90)

    progress = tracker.get_progress(member_id)
    assert progress.hours_since_last_claim == 1.5
    assert progress.classes_attended_since_last_claim == 0
    assert progress.last_claim_time == clock() - timedelta(hours=12)


# ============== claims ==============

def test_claim_when_eligible_resets_progress(protocol, tracker, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)

    claim = protocol.claim_reward(_reward_token(clock, member_id), member_id)

    assert claim.reward_type is RewardType.FREE_DRINK
    assert claim.qr_session_id == "a1b2c3"
    assert claim.claimed_at == clock()
    progress = tracker.get_progress(member_id)
    assert progress.hours_since_last_claim == 0
    assert progress.classes_attended_since_last_claim == 0


def test_claim_not_eligible(protocol, store, clock, member_id):
    _earn(store, clock, member_id, minutes=894, classes=16)

    with pytest.raises(GoalNotReached):
        protocol.claim_reward(_reward_token(clock, member_id), member_id)
    assert store.claims == []


def test_same_token_claims_once(protocol, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)
    raw = _reward_token(clock, member_id)

    protocol.claim_reward(raw, member_id)
    with pytest.raises(AlreadyClaimed):
        protocol.claim_reward(raw, member_id)
    assert len(store.claims) == 1


def test_concurrent_claims_of_one_token(protocol, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)
    raw = _reward_token(clock, member_id)

    def attempt(_):
        try:
            protocol.claim_reward(raw, member_id)
            return "claimed"
        except AlreadyClaimed:
            return "rejected"

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(attempt, range(8)))

    assert results.count("claimed") == 1
    assert results.count("rejected") == 7
    assert len(store.claims) == 1


def test_claim_rejects_someone_elses_token(protocol, store, clock, member_id):
    _earn(store, clock, "someone-else", minutes=900, classes=15)

    with pytest.raises(TokenUserMismatch):
        protocol.claim_reward(_reward_token(clock, "someone-else"), member_id)


def test_claim_rejects_expired_token(protocol, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)

    with pytest.raises(TokenExpired):
        protocol.claim_reward(_reward_token(clock, member_id, age_ms=300_001), member_id)
    assert "insert_reward_claim" not in store.calls


def test_claim_rejects_entry_token(protocol, clock, member_id):
    entry = qr_token.encode(qr_token.issue(member_id, "entry", now_ms=to_epoch_ms(clock()), secret=SECRET))
    with pytest.raises(TokenMalformed):
        protocol.claim_reward(entry, member_id)


def test_claim_landing_after_key_read_reports_already_claimed(protocol, store, clock, member_id):
    _earn(store, clock, member_id, minutes=900, classes=15)
    raw = _reward_token(clock, member_id)
    read_claim = store.get_reward_claim
    reads = []

    def racing_read(user_id, qr_timestamp, qr_session_id):
        found = read_claim(user_id, qr_timestamp, qr_session_id)
        reads.append(found)
        if len(reads) == 1:
            # the other redemption commits right after this read
            protocol.claim_reward(raw, member_id)
        return found

    store.get_reward_claim = racing_read

    with pytest.raises(AlreadyClaimed):
        protocol.claim_reward(raw, member_id)
    assert len(store.claims) == 1
