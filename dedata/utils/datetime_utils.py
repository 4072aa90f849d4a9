"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on round-trip, PostgreSQL keeps it.

    Args:
        value: Datetime (naive or aware) or None

    Returns:
        Aware datetime in UTC or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the moment's day, same tzinfo."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(moment: datetime, days: int) -> datetime:
    """Midnight ``days`` days before the moment's day."""
    return start_of_day(moment) - timedelta(days=days)
