"""Export occurrences as iCalendar documents and add-to-calendar links."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event

from ..core.datetime_utils import DEFAULT_PARISH_TIMEZONE, now_local
from .models import ChurchLocation, Occurrence

logger = logging.getLogger(__name__)

PRODID = "-//East Hillfoots Parish//parish-calendar//EN"
GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
OUTLOOK_CALENDAR_URL = "https://outlook.live.com/calendar/0/deeplink/compose"


def occurrence_uid(occurrence: Occurrence) -> str:
    """Stable UID per occurrence: the definition id plus the instance start."""
    return f"{occurrence.id}-{occurrence.instance_start.strftime('%Y%m%dT%H%M%S')}@parish-calendar"


def location_label(occurrence: Occurrence) -> str:
    if occurrence.location in (ChurchLocation.ALL, ChurchLocation.BOTH):
        return "Dollar & Muckhart"
    return f"{occurrence.location.value} Church"


def occurrence_to_ics(occurrence: Occurrence, tz_name: str = DEFAULT_PARISH_TIMEZONE) -> Event:
    """Build a VEVENT for one occurrence with zone-qualified start and end."""
    tz = ZoneInfo(tz_name)
    event = Event()
    event.add("uid", occurrence_uid(occurrence))
    event.add("summary", occurrence.title)
    event.add("dtstart", occurrence.instance_start.replace(tzinfo=tz))
    event.add("dtend", occurrence.instance_end.replace(tzinfo=tz))
    event.add("dtstamp", now_local(tz_name).replace(tzinfo=tz))
    event.add("location", location_label(occurrence))
    if occurrence.description:
        event.add("description", occurrence.description)
    event.add("categories", [occurrence.tag.value])
    return event


def occurrences_to_ics(
    occurrences: Iterable[Occurrence],
    tz_name: str = DEFAULT_PARISH_TIMEZONE,
    calendar_name: Optional[str] = None,
) -> bytes:
    """Serialize occurrences into a VCALENDAR document."""
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("x-wr-timezone", tz_name)
    if calendar_name:
        cal.add("x-wr-calname", calendar_name)

    count = 0
    for occurrence in occurrences:
        cal.add_component(occurrence_to_ics(occurrence, tz_name))
        count += 1

    logger.debug("Exported %d occurrences to iCalendar", count)
    return cal.to_ical()


def _compact(moment: datetime) -> str:
    return moment.strftime("%Y%m%dT%H%M%S")


def google_calendar_link(
    occurrence: Occurrence, tz_name: str = DEFAULT_PARISH_TIMEZONE
) -> str:
    params = {
        "action": "TEMPLATE",
        "text": occurrence.title,
        "dates": f"{_compact(occurrence.instance_start)}/{_compact(occurrence.instance_end)}",
        "details": occurrence.description,
        "location": location_label(occurrence),
        "ctz": tz_name,
    }
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"


def outlook_calendar_link(occurrence: Occurrence) -> str:
    params = {
        "path": "/calendar/action/compose",
        "rru": "addevent",
        "subject": occurrence.title,
        "startdt": occurrence.instance_start.isoformat(),
        "enddt": occurrence.instance_end.isoformat(),
        "body": occurrence.description,
        "location": location_label(occurrence),
    }
    return f"{OUTLOOK_CALENDAR_URL}?{urlencode(params)}"
