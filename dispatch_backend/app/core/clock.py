"""
Clock helpers.

All trip timestamps are stored as naive UTC datetimes.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow().date()
