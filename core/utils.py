import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalize a client-supplied datetime to naive UTC.
    Naive values are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def seconds_until(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole seconds (rounded up) from now until moment; 0 if already past."""
    now = now or utcnow()
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining)


def display_name(user) -> str:
    """First + last name, falling back to the email."""
    parts = [p for p in (user.first_name, user.last_name) if p]
    if parts:
        return " ".join(parts)
    return user.email
