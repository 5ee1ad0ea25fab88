"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Default for issue and payment dates."""
    return now_utc().date()
