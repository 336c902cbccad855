"""
Time Utilities Module

Day-count aging, start-of-day truncation and tolerant parsing of the
timestamps stored on collection and cheque records.
"""

from datetime import datetime, date, timezone, timedelta
from typing import Optional, Union

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts ISO strings (including a trailing ``Z``), datetimes and plain
    dates. Naive values are assumed to be UTC. Empty values return None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Cannot parse {type(value).__name__} as datetime")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Union[str, datetime, date, None]) -> Optional[date]:
    """Parse a stored calendar date (cheque date, deposit date)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot parse {type(value).__name__} as date")


def local_date(moment: datetime, tz=None) -> date:
    """Calendar date of ``moment`` in ``tz`` (the process local zone when None)"""
    return moment.astimezone(tz).date()


def age_in_days(reference: datetime, now: datetime, tz=None) -> int:
    """
    Whole days between the start of ``reference``'s day and the start of
    ``now``'s day.

    Both are truncated in the same zone, so the result is an integer day
    count that only changes at midnight and never decreases as ``now``
    advances.
    """
    delta = local_date(now, tz) - local_date(reference, tz)
    return delta.days


def end_of_range(day: date, tz=None) -> datetime:
    """
    Upper bound for an inclusive ``date_to`` filter.

    The end date is widened by one day before comparison so that anything
    recorded during that day is still inside the range.
    """
    return _midnight(day + ONE_DAY, tz)


def start_of_range(day: date, tz=None) -> datetime:
    """Lower bound for a ``date_from`` filter"""
    return _midnight(day, tz)


def _midnight(day: date, tz=None) -> datetime:
    naive = datetime(day.year, day.month, day.day)
    if tz is not None:
        return naive.replace(tzinfo=tz)
    # Interpret as wall-clock time in the process local zone
    return naive.astimezone()
