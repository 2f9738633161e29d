"""Local wall-clock date helpers for parish_calendar.

Event dates are stored as plain calendar dates and times of day with no
zone. They are composed into naive local datetimes field by field, so a value
like "2024-03-10" can never drift to a neighbouring day the way it would if it
were read as a UTC instant and then shown in local time.
"""

from __future__ import annotations

import calendar
import logging
import os
import re
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

DEFAULT_PARISH_TIMEZONE = "Europe/London"

TEST_TIME_ENV = "PARISH_CALENDAR_TEST_TIME"

_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2})(?::\d{1,2}(?:\.\d+)?)?\s*([aApP]\.?[mM]\.?)?")


def parse_local_date(value: Any) -> date | None:
    """Return the calendar date held in ``value`` without any zone conversion.

    Accepts ``date``/``datetime`` objects and ``YYYY-MM-DD`` strings. For an
    ISO string with a time part only the part before ``T`` is used, so
    "2024-03-10T00:00:00.000Z" is the 10th whatever the host offset is.
    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    match = _DATE_PATTERN.match(text)
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_local_time(value: Any) -> time | None:
    """Return the hour and minute held in ``value`` as a naive ``time``.

    Accepts ``time``/``datetime`` objects and "HH:MM" strings (optionally
    with seconds or an AM/PM suffix). For an ISO datetime string the part
    after ``T`` is used. Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return time(value.hour, value.minute)
    if isinstance(value, time):
        return time(value.hour, value.minute)

    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[1]
    match = _TIME_PATTERN.match(text)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2))
    meridiem = (match.group(3) or "").replace(".", "").lower()
    if meridiem == "pm" and hours < 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0

    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def local_datetime_on_date(date_value: Any, time_value: Any = None) -> datetime | None:
    """Compose a date and an optional time of day into a local datetime.

    Missing time means midnight. Returns None when the date is unusable.
    """
    day = parse_local_date(date_value)
    if day is None:
        return None
    clock = parse_local_time(time_value) or time.min
    return datetime.combine(day, clock)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def start_of_day(value: date | datetime) -> datetime:
    return datetime.combine(_as_date(value), time.min)


def end_of_day(value: date | datetime) -> datetime:
    return datetime.combine(_as_date(value), time.max)


def start_of_month(value: date | datetime) -> date:
    return _as_date(value).replace(day=1)


def last_day_of_month(value: date | datetime) -> date:
    day = _as_date(value)
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def end_of_month(value: date | datetime) -> datetime:
    return end_of_day(last_day_of_month(value))


def first_of_next_month(value: date | datetime) -> datetime:
    """Midnight on the 1st of the month after ``value``."""
    return start_of_day(start_of_month(value) + relativedelta(months=1))


def sunday_based_weekday(value: date | datetime) -> int:
    """Weekday number with Sunday=0 through Saturday=6."""
    return (_as_date(value).weekday() + 1) % 7


def whole_weeks_between(earlier: datetime, later: datetime) -> int:
    return (later - earlier) // timedelta(weeks=1)


def start_of_week(value: date | datetime) -> date:
    """Sunday on or before ``value``."""
    day = _as_date(value)
    return day - timedelta(days=sunday_based_weekday(day))


def end_of_week(value: date | datetime) -> date:
    """Saturday on or after ``value``."""
    return start_of_week(value) + timedelta(days=6)


def now_local(tz_name: str = DEFAULT_PARISH_TIMEZONE) -> datetime:
    """Return the current naive wall-clock time in the parish timezone.

    Can be overridden for testing via the PARISH_CALENDAR_TEST_TIME
    environment variable (ISO 8601). An aware override is converted to the
    parish timezone; a naive one is taken as already local.
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
            return dt
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def today_local(tz_name: str = DEFAULT_PARISH_TIMEZONE) -> date:
    return now_local(tz_name).date()
