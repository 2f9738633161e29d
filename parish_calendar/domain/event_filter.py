"""Occurrence filtering and calendar view ranges for parish_calendar."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from enum import Enum

from ..calendar.models import ChurchLocation, Occurrence
from ..core.datetime_utils import (
    end_of_week,
    last_day_of_month,
    start_of_month,
    start_of_week,
)

logger = logging.getLogger(__name__)

# Tags shown whenever at least one church is selected
SHARED_TAGS = frozenset({ChurchLocation.ALL, ChurchLocation.BOTH})

DEFAULT_ACTIVE_LOCATIONS = frozenset({ChurchLocation.DOLLAR, ChurchLocation.MUCKHART})


class CalendarView(str, Enum):
    MONTH = "month"
    WEEK = "week"


def filter_by_locations(
    occurrences: Iterable[Occurrence], active_locations: Iterable[ChurchLocation]
) -> list[Occurrence]:
    """Keep occurrences visible under the selected church filter.

    Occurrences tagged All or Both belong to every church and stay visible
    as long as any church is selected. Otherwise the tag must be selected.
    """
    active = set(active_locations)
    visible = []
    for occurrence in occurrences:
        if occurrence.tag in SHARED_TAGS:
            if active:
                visible.append(occurrence)
        elif occurrence.tag in active:
            visible.append(occurrence)
    return visible


def calendar_view_range(view: CalendarView | str, current: date | datetime) -> tuple[date, date]:
    """Return the first and last day shown by a calendar view.

    Month view spans whole Sunday-to-Saturday weeks covering the month of
    ``current``; week view is the Sunday-to-Saturday week containing it.

    Raises:
        ValueError: If ``view`` is not a known view name
    """
    view = CalendarView(view)
    if view == CalendarView.MONTH:
        return start_of_week(start_of_month(current)), end_of_week(last_day_of_month(current))
    return start_of_week(current), end_of_week(current)


def occurrences_on_day(occurrences: Iterable[Occurrence], day: date) -> list[Occurrence]:
    return [o for o in occurrences if o.instance_start.date() == day]


def sort_occurrences(occurrences: Iterable[Occurrence]) -> list[Occurrence]:
    """Sort ascending by start time, ties broken by title."""
    return sorted(occurrences, key=lambda o: (o.instance_start, o.title))
