"""
Check-in protocol: entry / exit scans
"""
from datetime import timedelta

import pytest

from app.errors import NoOpenCheckIn, TokenExpired, TokenMalformed
from app.services.checkins import CheckInProtocol
from app.utils import qr_token
from app.utils.helpers import to_epoch_ms

SECRET = "test-secret"


@pytest.fixture
def protocol(store, clock):
    return CheckInProtocol(store, clock=clock, signing_secret=SECRET, require_signature=False)


def _token(clock, user_id, action, age_ms=0):
    token = qr_token.issue(user_id, action, now_ms=to_epoch_ms(clock()) - age_ms, secret=SECRET)
    return qr_token.encode(token)


def test_entry_then_exit_records_duration(protocol, store, clock, member_id):
    opened = protocol.scan(_token(clock, member_id, "entry"))
    assert opened.is_open
    assert opened.check_in_time == clock()

    clock.advance(minutes=95)
    closed = protocol.scan(_token(clock, member_id, "exit"))

    assert closed.id == opened.id
    assert closed.check_out_time == clock()
    assert closed.duration_minutes == 95
    assert not store.check_ins[opened.id].is_open


def test_token_just_inside_max_age_accepted(protocol, store, clock, member_id):
    protocol.scan(_token(clock, member_id, "entry", age_ms=299_999))
    assert len(store.check_ins) == 1


def test_token_past_max_age_rejected_before_store_access(protocol, store, clock, member_id):
    with pytest.raises(TokenExpired):
        protocol.scan(_token(clock, member_id, "entry", age_ms=300_001))
    assert store.check_ins == {}
    assert store.calls == []


def test_exit_without_entry_mutates_nothing(protocol, store, clock, member_id):
    store.add_visit(member_id, clock() - timedelta(hours=3), 60)
    before = dict(store.check_ins)

    with pytest.raises(NoOpenCheckIn):
        protocol.scan(_token(clock, member_id, "exit"))

    assert store.check_ins == before
    assert "close_check_in" not in store.calls


def test_exit_closes_most_recent_open_check_in(protocol, store, clock, member_id):
    first = protocol.scan(_token(clock, member_id, "entry"))
    clock.advance(minutes=10)
    second = protocol.scan(_token(clock, member_id, "entry"))
    clock.advance(minutes=30)

    closed = protocol.scan(_token(clock, member_id, "exit"))

    assert closed.id == second.id
    assert closed.duration_minutes == 30
    assert store.check_ins[first.id].is_open


def test_exit_only_touches_own_check_in(protocol, store, clock, member_id):
    protocol.scan(_token(clock, "someone-else", "entry"))

    with pytest.raises(NoOpenCheckIn):
        protocol.scan(_token(clock, member_id, "exit"))


def test_scan_rejects_malformed_and_reward_tokens(protocol, store, clock, member_id):
    with pytest.raises(TokenMalformed):
        protocol.scan("garbage")
    with pytest.raises(TokenMalformed):
        protocol.scan(_token(clock, member_id, "reward"))
    assert store.check_ins == {}


def test_signature_required_rejects_unsigned(store, clock, member_id):
    protocol = CheckInProtocol(store, clock=clock, signing_secret=SECRET, require_signature=True)
    unsigned = qr_token.encode(qr_token.issue(member_id, "entry", now_ms=to_epoch_ms(clock()), secret=None))

    with pytest.raises(TokenMalformed):
        protocol.scan(unsigned)
