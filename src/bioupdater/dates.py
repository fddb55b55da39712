"""Date helpers for sync windows.

Sync windows are whole days. Filtering compares the calendar date of a
record, never the time of day, so both boundary days are fully included.
"""

from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from .sync.domain.entities import TIME_RECORD_FORMAT

DATE_FORMAT = "%Y-%m-%d"


class DateRange(NamedTuple):
    from_date: datetime
    to_date: datetime
    date_string: str


def as_date(value: date | datetime | str) -> date:
    """Normalize a date, datetime or `YYYY-MM-DD` string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def parse_date(value: str) -> date:
    """Parse a strict `YYYY-MM-DD` string.

    Raises:
        ValueError: If the string is not in that format
    """
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def date_range(value: date | datetime | str) -> DateRange:
    """Start and end of the given day."""
    day = as_date(value)
    return DateRange(
        from_date=datetime.combine(day, time.min),
        to_date=datetime.combine(day, time.max),
        date_string=day.strftime(DATE_FORMAT),
    )


def yesterday_range(today: date | None = None) -> DateRange:
    """Start and end of the day before `today` (local time)."""
    today = today or date.today()
    return date_range(today - timedelta(days=1))


def format_for_database(value: datetime) -> str:
    return value.strftime(TIME_RECORD_FORMAT)


def is_date_match(date_time_string: str, target_date: str) -> bool:
    return date_time_string.startswith(target_date)


def within_window(
    value: date | datetime,
    from_date: date | datetime,
    to_date: date | datetime,
) -> bool:
    """Inclusive calendar-date comparison against a window."""
    return as_date(from_date) <= as_date(value) <= as_date(to_date)
