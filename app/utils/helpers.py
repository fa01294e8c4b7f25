import uuid
from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """
    Convert a datetime to integer milliseconds since the epoch.
    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def new_id() -> str:
    """Generate a new row identifier (UUID4 string)."""
    return str(uuid.uuid4())


def format_hours(hours: float) -> str:
    """
    Format an hour amount for messages, e.g. 1.5 -> '1.5 hours', 1 -> '1 hour'.
    """
    text = f"{hours:.1f}".rstrip("0").rstrip(".")
    return f"{text} hour" if text == "1" else f"{text} hours"
