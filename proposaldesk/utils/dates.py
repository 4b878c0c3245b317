"""Date helpers shared by the write path and the draft finder."""
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_expiration(anchor: datetime, unit: str, value) -> datetime:
    """
    Compute an offer expiration from an anchor time.

    Supported units are 'hours' and 'days'. Anything else (including a missing
    value) falls back to 3 days.
    """
    try:
        amount = int(value)
    except (TypeError, ValueError):
        amount = None

    if amount is not None and unit == 'hours':
        return anchor + timedelta(hours=amount)
    if amount is not None and unit == 'days':
        return anchor + timedelta(days=amount)
    return anchor + timedelta(days=3)
