"""
Session scheduling for administrators
"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from app.errors import InvalidSession, SessionNotFound
from app.models import ClassSession
from app.store import BookingStore
from app.utils.helpers import new_id

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(err["msg"] for err in exc.errors())


class SessionScheduler:
    def __init__(self, store: BookingStore):
        self.store = store

    def schedule(
        self,
        name: str,
        start_time: datetime,
        end_time: datetime,
        capacity: Optional[int] = None,
        instructor: Optional[str] = None,
        class_id: Optional[str] = None,
    ) -> ClassSession:
        try:
            session = ClassSession(
                id=new_id(),
                name=name,
                instructor=instructor,
                start_time=start_time,
                end_time=end_time,
                capacity=capacity,
                class_id=class_id,
            )
        except ValidationError as e:
            raise InvalidSession(_validation_message(e)) from e

        self.store.insert_session(session)
        logger.info(f"Session {session.id} scheduled: {name} at {start_time.isoformat()}")
        return session

    def update(self, session_id: str, **changes) -> ClassSession:
        """
        Apply ``changes`` to a session. Capacity may not drop below the number
        of bookings already holding a slot.
        """
        current = self.store.get_session(session_id)
        if current is None:
            raise SessionNotFound()

        data = current.model_dump()
        data.update(changes)
        try:
            updated = ClassSession(**data)
        except ValidationError as e:
            raise InvalidSession(_validation_message(e)) from e

        if updated.capacity is not None and updated.capacity != current.capacity:
            booked = self.store.count_occupying([session_id]).get(session_id, 0)
            if updated.capacity < booked:
                raise InvalidSession(
                    f"Capacity {updated.capacity} is below the {booked} existing bookings"
                )

        self.store.update_session(updated)
        logger.info(f"Session {session_id} updated: {sorted(changes)}")
        return updated
