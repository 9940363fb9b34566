"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC.

    Naive values are taken to already be UTC (that is how the auction
    config rows are written by admin tooling).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_hours_between(start: datetime, end: datetime) -> int:
    """Whole hours from start to end, truncated toward zero."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return int(seconds // 3600) if seconds >= 0 else -int(-seconds // 3600)
