"""Occurrence expansion for parish event definitions.

Turns stored EventDefinitions (one-off events plus Weekly, BiWeekly and
"Nth weekday of the month" series) into the concrete Occurrences that fall in
a query window. Pure and synchronous: no I/O, no clock reads, and malformed
definitions are skipped or defaulted rather than raising.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from ..core.datetime_utils import (
    end_of_day,
    end_of_month,
    first_of_next_month,
    last_day_of_month,
    start_of_day,
    start_of_month,
    sunday_based_weekday,
    whole_weeks_between,
)
from .models import EventDefinition, Occurrence, RecurrenceType

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(weeks=1)
LAST_WEEK_OF_MONTH = 5


@dataclass
class ExpansionConfig:
    """Configuration for occurrence expansion."""

    # Runaway-series guard: cursor steps per definition
    max_iterations: int = 500
    default_duration_minutes: int = 60

    @classmethod
    def from_settings(cls, settings: Any) -> ExpansionConfig:
        """Extract expansion settings from a Config-like object, keeping defaults."""
        return cls(
            max_iterations=getattr(settings, "max_series_iterations", 500),
            default_duration_minutes=getattr(settings, "default_duration_minutes", 60),
        )


@dataclass(frozen=True)
class ExpansionWindow:
    """Inclusive bounds no occurrence may fall outside of.

    The upper bound is widened to the end of the month containing the
    requested end so month grids showing trailing days still get series
    instances scoped to the whole month.
    """

    start: datetime
    end: datetime

    @classmethod
    def for_range(cls, range_start: date | datetime, range_end: date | datetime) -> ExpansionWindow:
        return cls(start=start_of_day(range_start), end=end_of_month(range_end))

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def resolve_relative_date_of_month(
    month_date: date | datetime, day_of_week: int, week_of_month: int
) -> Optional[date]:
    """Return the Nth (or last) given weekday of the month containing ``month_date``.

    Args:
        month_date: Any date in the target month
        day_of_week: Weekday number, Sunday=0 through Saturday=6
        week_of_month: 1-4 for the Nth occurrence, 5 for the last one

    Returns:
        The matching date, or None when the month has no such date
        (only possible for a ``week_of_month`` outside 1-5).
    """
    first = start_of_month(month_date)
    last = last_day_of_month(month_date)

    if week_of_month < LAST_WEEK_OF_MONTH:
        count = 0
        current = first
        while current <= last:
            if sunday_based_weekday(current) == day_of_week:
                count += 1
                if count == week_of_month:
                    return current
            current += ONE_DAY
    elif week_of_month == LAST_WEEK_OF_MONTH:
        current = last
        while current >= first:
            if sunday_based_weekday(current) == day_of_week:
                return current
            current -= ONE_DAY

    return None


def anchor_bounds(
    event: EventDefinition, config: ExpansionConfig | None = None
) -> Optional[tuple[datetime, datetime]]:
    """Return (start, end) of the anchor occurrence, or None without an event date.

    An end time earlier than the start time is an overnight event and moves
    to the next calendar day. Without an end time the configured default
    duration applies.
    """
    if event.event_date is None:
        return None
    config = config or ExpansionConfig()

    event_start = datetime.combine(event.event_date, event.start_time or datetime.min.time())
    if event.end_time is not None:
        event_end = datetime.combine(event.event_date, event.end_time)
        if event_end < event_start:
            event_end += ONE_DAY
    else:
        event_end = event_start + timedelta(minutes=config.default_duration_minutes)
    return event_start, event_end


def _make_occurrence(
    event: EventDefinition, start: datetime, end: datetime, is_recurring: bool
) -> Occurrence:
    fields = event.model_dump()
    fields.update(is_recurring=is_recurring, instance_start=start, instance_end=end)
    return Occurrence(**fields)


def _monthly_target(event: EventDefinition, anchor: datetime, cursor: datetime) -> Optional[date]:
    day_of_week = event.day_of_week if event.day_of_week is not None else sunday_based_weekday(anchor)
    week_of_month = (
        event.week_of_month if event.week_of_month is not None else math.ceil(anchor.day / 7)
    )
    target = resolve_relative_date_of_month(cursor, day_of_week, week_of_month)
    if target is None or target < cursor.date():
        return None
    return target


def _qualifying_date(
    event: EventDefinition, anchor: datetime, anchor_day: datetime, cursor: datetime
) -> Optional[date]:
    """Return the date the series occurs on for this cursor step, if any."""
    if event.recurrence == RecurrenceType.WEEKLY:
        return cursor.date()
    if event.recurrence == RecurrenceType.BIWEEKLY:
        if whole_weeks_between(anchor_day, cursor) % 2 == 0:
            return cursor.date()
        return None
    if event.recurrence == RecurrenceType.MONTHLY_RELATIVE:
        return _monthly_target(event, anchor, cursor)
    return None


def _advance(event: EventDefinition, cursor: datetime) -> datetime:
    if event.recurrence == RecurrenceType.MONTHLY_RELATIVE:
        return first_of_next_month(cursor)
    # BiWeekly also steps one week; parity is decided in _qualifying_date
    return cursor + ONE_WEEK


def _expand_series(
    event: EventDefinition,
    event_start: datetime,
    duration: timedelta,
    window: ExpansionWindow,
    config: ExpansionConfig,
) -> list[Occurrence]:
    anchor_day = start_of_day(event_start)
    series_end = (
        end_of_day(event.recurrence_end_date) if event.recurrence_end_date else window.end
    )
    search_limit = min(series_end, window.end)

    occurrences: list[Occurrence] = []
    cursor = anchor_day
    iterations = 0
    while cursor.date() <= search_limit.date():
        if iterations >= config.max_iterations:
            logger.warning(
                "Series %s truncated after %d iterations at %s",
                event.id,
                iterations,
                cursor.date().isoformat(),
            )
            break
        iterations += 1

        candidate = _qualifying_date(event, event_start, anchor_day, cursor)
        if candidate is not None and candidate <= search_limit.date():
            occurrence_start = datetime.combine(candidate, event_start.time())
            if occurrence_start >= anchor_day and window.contains(occurrence_start):
                occurrences.append(
                    _make_occurrence(
                        event, occurrence_start, occurrence_start + duration, is_recurring=True
                    )
                )

        cursor = _advance(event, cursor)

    return occurrences


def expand_event(
    event: EventDefinition, window: ExpansionWindow, config: ExpansionConfig | None = None
) -> list[Occurrence]:
    """Expand a single definition into the occurrences inside ``window``."""
    config = config or ExpansionConfig()
    bounds = anchor_bounds(event, config)
    if bounds is None:
        logger.debug("Skipping event %s without an event date", event.id)
        return []

    event_start, event_end = bounds
    if not event.recurs:
        if window.contains(event_start):
            return [_make_occurrence(event, event_start, event_end, is_recurring=False)]
        return []

    return _expand_series(event, event_start, event_end - event_start, window, config)


def expand_events(
    events: Iterable[EventDefinition],
    range_start: date | datetime,
    range_end: date | datetime,
    config: ExpansionConfig | None = None,
) -> list[Occurrence]:
    """Expand event definitions into dated occurrences for a query range.

    Args:
        events: Normalized event definitions
        range_start: Start of the query; widened to the start of its day
        range_end: End of the query; widened to the end of its month
        config: Optional expansion settings

    Returns:
        Unordered list of occurrences, none outside the widened window
    """
    config = config or ExpansionConfig()
    window = ExpansionWindow.for_range(range_start, range_end)

    instances: list[Occurrence] = []
    for event in events:
        instances.extend(expand_event(event, window, config))

    logger.debug(
        "Expanded %d occurrences between %s and %s",
        len(instances),
        window.start.isoformat(),
        window.end.isoformat(),
    )
    return instances
