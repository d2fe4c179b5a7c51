"""Timezone-aware UTC helpers.

Every timestamp column defaults to ``utc_now`` so naive datetimes never reach
the database.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def days_from_now(days: int) -> datetime:
    return utc_now() + timedelta(days=days)
