"""
Timezone helpers.

Everything is stored and compared in UTC:
- `utc_now()`: current instant, timezone-aware
- `to_utc(dt)`: normalize naive or aware datetimes to UTC
- `parse_datetime(value)`: accept datetimes or ISO-8601 strings from the database
"""

from datetime import datetime, timezone
from typing import Optional, Union


TZ_UTC = timezone.utc


def utc_now() -> datetime:
    """
    Current instant in UTC (timezone-aware).

    Returns:
        aware datetime in UTC
    """
    return datetime.now(TZ_UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ_UTC)
    return dt.astimezone(TZ_UTC)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a database/JSON timestamp into an aware UTC datetime.

    Args:
        value: ISO-8601 string, datetime or None

    Returns:
        aware UTC datetime or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    # PostgREST may return a trailing "Z"
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
