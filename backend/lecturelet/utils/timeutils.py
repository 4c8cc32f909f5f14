"""Clock helpers.

The store keeps naive UTC timestamps; scheduling maths works on aware
datetimes in the configured zone.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an instant for storage. Naive values are assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

