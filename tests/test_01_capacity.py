"""
Capacity Oracle: occupancy counts per session
"""
import math
from datetime import timedelta

from app.models import BookingStatus, Occupancy
from app.services.capacity import CapacityOracle


def test_counts_only_slot_holding_statuses(store, clock):
    session = store.add_session(clock() + timedelta(days=2), capacity=5)
    for i, status in enumerate(BookingStatus):
        store.add_booking(f"user-{i}", session.id, clock(), status=status)

    occupancy = CapacityOracle(store).get_occupancy([session.id])[session.id]

    # booked, confirmed and attended hold a slot; cancelled and no_show do not
    assert occupancy.booked_count == 3
    assert occupancy.available_count == 2
    assert occupancy.has_room


def test_available_never_negative(store, clock):
    session = store.add_session(clock() + timedelta(days=2), capacity=2)
    for i in range(3):
        store.add_booking(f"user-{i}", session.id, clock())

    occupancy = CapacityOracle(store).get_occupancy([session.id])[session.id]
    assert occupancy.booked_count == 3
    assert occupancy.available_count == 0
    assert not occupancy.has_room


def test_unlimited_session_reports_infinite_room(store, clock):
    session = store.add_session(clock() + timedelta(days=2), capacity=None)
    store.add_booking("user-1", session.id, clock())

    occupancy = CapacityOracle(store).get_occupancy([session.id])[session.id]
    assert occupancy.capacity is None
    assert occupancy.available_count == math.inf
    assert occupancy.to_public()["available_count"] is None


def test_batch_lookup_omits_unknown_and_dedupes(store, clock):
    a = store.add_session(clock() + timedelta(days=1), capacity=10)
    b = store.add_session(clock() + timedelta(days=2), capacity=3)
    store.add_booking("user-1", b.id, clock())

    result = CapacityOracle(store).get_occupancy([a.id, b.id, a.id, "missing"])

    assert set(result) == {a.id, b.id}
    assert result[a.id].available_count == 10
    assert result[b.id].available_count == 2


def test_empty_request_returns_empty(store):
    assert CapacityOracle(store).get_occupancy([]) == {}


def test_has_room(store, clock):
    session = store.add_session(clock() + timedelta(days=1), capacity=1)
    oracle = CapacityOracle(store)
    assert oracle.has_room(session.id)

    store.add_booking("user-1", session.id, clock())
    assert not oracle.has_room(session.id)
    assert not oracle.has_room("missing")


def test_compute_matches_formula():
    assert Occupancy.compute("s", 20, 1).available_count == 19
    assert Occupancy.compute("s", 20, 25).available_count == 0
