"""
Capacity Oracle - booked vs capacity counts per session
"""
import logging
from typing import Dict, Iterable

from app.models import Occupancy
from app.store import BookingStore

logger = logging.getLogger(__name__)


class CapacityOracle:
    """
    Read-only occupancy lookups.

    Results are a display hint; the booking path rechecks capacity inside the
    store's locked insert.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    def get_occupancy(self, session_ids: Iterable[str]) -> Dict[str, Occupancy]:
        """
        Batch occupancy for ``session_ids``. Unknown ids are left out of the
        result.
        """
        ids = list(dict.fromkeys(session_ids))
        if not ids:
            return {}

        sessions = self.store.get_sessions(ids)
        counts = self.store.count_occupying(sessions.keys())

        return {
            session_id: Occupancy.compute(session_id, session.capacity, counts.get(session_id, 0))
            for session_id, session in sessions.items()
        }

    def has_room(self, session_id: str) -> bool:
        occupancy = self.get_occupancy([session_id]).get(session_id)
        return occupancy is not None and occupancy.has_room
