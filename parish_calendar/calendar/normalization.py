"""Header-agnostic normalization of spreadsheet rows into parish records.

Rows pulled from the spreadsheet web app carry whatever column headers the
sheet owner typed ("Event Date", "date", "Day", ...). Each canonical field has
a prioritized list of aliases, matched case-insensitively with whitespace
removed, and every mapper returns a validated pydantic model with sensible
defaults so downstream code never sees raw rows.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date
from typing import Any, Mapping, Optional

from dateutil import parser as date_parser

from ..core.datetime_utils import now_local, parse_local_date
from .models import (
    ChurchContact,
    ChurchGroup,
    ChurchLocation,
    ContactRequest,
    EventDefinition,
    Feedback,
    KnowledgeEntry,
    MissionStatement,
    RecurrenceType,
    Subscriber,
)

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = frozenset({"true", "yes", "1", "on"})

FIELD_ALIASES: dict[str, dict[str, list[str]]] = {
    "event": {
        "id": ["id", "uuid", "entryid"],
        "event_date": ["eventdate", "date", "day"],
        "is_recurring": ["isrecurring", "recurring", "repeat?"],
        "recurrence": ["recurrence", "frequency", "repeat"],
        "title": ["title", "name", "event", "subject"],
        "description": ["description", "details", "info", "notes"],
        "location": ["location", "place", "venue"],
        "tag": ["tag", "category", "label"],
        "start_time": ["starttime", "start", "time"],
        "end_time": ["endtime", "end"],
        "recurrence_end_date": ["recurrenceenddate", "repeatuntil", "until"],
        "day_of_week": ["dayofweek", "weekday"],
        "week_of_month": ["weekofmonth", "weeknumber"],
    },
    "group": {
        "id": ["id", "uuid", "entryid"],
        "name": ["name", "groupname", "title"],
        "description": ["description", "details", "info"],
        "church": ["church", "location", "parish"],
        "meeting_time": ["meetingtime", "time", "when"],
        "contact_person": ["contactperson", "contact", "leader"],
    },
    "contact": {
        "id": ["id", "uuid", "entryid"],
        "name": ["name", "fullname", "contactname"],
        "title": ["title", "position", "parishtitle"],
        "role": ["role", "accessrole", "systemrole"],
        "email": ["email", "emailaddress", "contactemail"],
        "phone": ["phone", "telephone", "mobile", "number"],
        "image_url": ["imageurl", "image", "photo", "profilepicture"],
        "display_publicly": ["displaypublicly", "public", "visible"],
    },
    "request": {
        "id": ["id", "uuid"],
        "name": ["name", "fullname", "sender"],
        "email": ["email", "emailaddress"],
        "phone": ["phone", "telephone"],
        "subject": ["subject", "topic"],
        "message": ["message", "text", "inquiry"],
        "submitted_at": ["submittedat", "date", "time"],
    },
    "knowledge": {
        "id": ["id", "uuid"],
        "title": ["title", "subject"],
        "content": ["content", "description", "text"],
        "attachment_url": ["attachmenturl", "attachment", "file"],
        "attachment_name": ["attachmentname", "filename"],
        "last_updated": ["lastupdated", "date"],
    },
    "subscriber": {
        "id": ["id", "uuid"],
        "name": ["name", "fullname", "member"],
        "email": ["email", "emailaddress"],
        "subscribed_at": ["subscribedat", "date", "joined"],
    },
    "feedback": {
        "id": ["id", "uuid"],
        "found_looking": ["foundlooking", "found", "status"],
        "improve_website": ["improvewebsite", "improve", "feedback"],
        "add_remove": ["addremove", "changes"],
        "submitted_at": ["submittedat", "date", "time"],
        "page_path": ["pagepath", "page", "url"],
    },
    "mission": {
        "text": ["text", "mission", "statement", "missionstatement"],
        "last_updated": ["lastupdated", "date", "updated"],
    },
}

_ISO_LIKE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})")
_DAY_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})")
_WHITESPACE = re.compile(r"\s")


def _squash(key: str) -> str:
    return _WHITESPACE.sub("", key).lower()


def get_flexible_value(record: Mapping[str, Any] | None, aliases: list[str]) -> Any:
    """Look up the first alias present in ``record``.

    Keys are compared lowercased with all whitespace removed, so a column
    called "Event Date" matches the alias "eventdate".

    Args:
        record: Raw row as returned by the spreadsheet web app
        aliases: Candidate keys in priority order

    Returns:
        The value of the first matching key, or None when none match
    """
    if not record:
        return None
    squashed = {_squash(str(key)): key for key in record}
    for alias in aliases:
        actual = squashed.get(_squash(alias))
        if actual is not None:
            return record[actual]
    return None


def _text(value: Any, default: str = "") -> str:
    """String value of a cell, ``default`` for empty cells."""
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_STRINGS


def coerce_int(value: Any, fallback: Optional[int] = None) -> Optional[int]:
    """Integer value of a cell (``"3"``, ``3.0``), or ``fallback``."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return fallback


def _in_range(value: Optional[int], low: int, high: int) -> Optional[int]:
    if value is None or low <= value <= high:
        return value
    return None


def parse_cloud_date(value: Any) -> Optional[date]:
    """Parse a date cell written in any of the formats sheet owners use.

    ``YYYY-MM-DD`` and ``YYYY/M/D`` are read directly. ``D/M/YYYY`` is
    recognized when the first number cannot be a month (> 12); other
    slash dates are read month-first. ISO strings with a time part keep only
    their date part.
    """
    if value is None:
        return None
    if isinstance(value, date):
        return parse_local_date(value)

    text = str(value).strip()
    if not text:
        return None

    match = _ISO_LIKE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    match = _DAY_FIRST.match(text)
    if match:
        first, second, year = (int(part) for part in match.groups())
        day, month = (first, second) if first > 12 else (second, first)
        try:
            return date(year, month, day)
        except ValueError:
            return None

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        logger.debug("Unparseable date cell %r", text)
        return None


def normalize_location(value: Any) -> ChurchLocation:
    text = str(value or "").strip().lower()
    if "dollar" in text:
        return ChurchLocation.DOLLAR
    if "muckhart" in text:
        return ChurchLocation.MUCKHART
    return ChurchLocation.ALL


def _generated_id(prefix: str, index: int) -> str:
    return f"{prefix}-{index}-{uuid.uuid4().hex[:8]}"


def _timestamp() -> str:
    return now_local().isoformat()


def normalize_event(record: Mapping[str, Any], index: int = 0) -> EventDefinition:
    """Map a raw event row onto an EventDefinition.

    Without an explicit recurring flag a row is recurring whenever its
    recurrence rule is anything but ``None``. A missing or unparseable event
    date stays None.
    """
    aliases = FIELD_ALIASES["event"]

    def field(name: str) -> Any:
        return get_flexible_value(record, aliases[name])

    recurrence = field("recurrence") or RecurrenceType.NONE.value
    raw_recurring = field("is_recurring")

    event = EventDefinition(
        id=_text(field("id")) or _generated_id("event", index),
        title=_text(field("title"), "Untitled Event"),
        description=_text(field("description")),
        location=normalize_location(field("location")),
        tag=normalize_location(field("tag")),
        start_time=_text(field("start_time")) or None,
        end_time=_text(field("end_time")) or None,
        recurrence=recurrence,
        recurrence_end_date=parse_cloud_date(field("recurrence_end_date")),
        event_date=parse_cloud_date(field("event_date")),
        day_of_week=_in_range(coerce_int(field("day_of_week")), 0, 6),
        week_of_month=_in_range(coerce_int(field("week_of_month")), 1, 5),
    )
    if raw_recurring is not None:
        event.is_recurring = coerce_boolean(raw_recurring)
    else:
        event.is_recurring = event.recurrence != RecurrenceType.NONE
    return event


def normalize_group(record: Mapping[str, Any], index: int = 0) -> ChurchGroup:
    aliases = FIELD_ALIASES["group"]
    church = _text(get_flexible_value(record, aliases["church"])).lower()
    return ChurchGroup(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("group", index),
        name=_text(get_flexible_value(record, aliases["name"]), "Unnamed Group"),
        description=_text(get_flexible_value(record, aliases["description"])),
        church=ChurchLocation.MUCKHART if "muckhart" in church else ChurchLocation.DOLLAR,
        meeting_time=_text(get_flexible_value(record, aliases["meeting_time"])),
        contact_person=_text(get_flexible_value(record, aliases["contact_person"])),
    )


def normalize_contact(record: Mapping[str, Any], index: int = 0) -> ChurchContact:
    aliases = FIELD_ALIASES["contact"]
    raw_public = get_flexible_value(record, aliases["display_publicly"])
    return ChurchContact(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("contact", index),
        name=_text(get_flexible_value(record, aliases["name"]), "Unknown Name"),
        title=_text(get_flexible_value(record, aliases["title"])),
        role=_text(get_flexible_value(record, aliases["role"]), "Volunteer"),
        email=_text(get_flexible_value(record, aliases["email"])),
        phone=_text(get_flexible_value(record, aliases["phone"])),
        image_url=_text(get_flexible_value(record, aliases["image_url"])),
        display_publicly=True if raw_public is None else coerce_boolean(raw_public),
    )


def normalize_request(record: Mapping[str, Any], index: int = 0) -> ContactRequest:
    aliases = FIELD_ALIASES["request"]
    return ContactRequest(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("req", index),
        name=_text(get_flexible_value(record, aliases["name"]), "Anonymous"),
        email=_text(get_flexible_value(record, aliases["email"])),
        phone=_text(get_flexible_value(record, aliases["phone"])),
        subject=_text(get_flexible_value(record, aliases["subject"]), "General"),
        message=_text(get_flexible_value(record, aliases["message"])),
        submitted_at=_text(get_flexible_value(record, aliases["submitted_at"])) or _timestamp(),
    )


def normalize_knowledge(record: Mapping[str, Any], index: int = 0) -> KnowledgeEntry:
    aliases = FIELD_ALIASES["knowledge"]
    return KnowledgeEntry(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("kb", index),
        title=_text(get_flexible_value(record, aliases["title"]), "Untitled Entry"),
        content=_text(get_flexible_value(record, aliases["content"])),
        attachment_url=_text(get_flexible_value(record, aliases["attachment_url"])),
        attachment_name=_text(get_flexible_value(record, aliases["attachment_name"])),
        last_updated=_text(get_flexible_value(record, aliases["last_updated"])) or _timestamp(),
    )


def normalize_subscriber(record: Mapping[str, Any], index: int = 0) -> Subscriber:
    aliases = FIELD_ALIASES["subscriber"]
    return Subscriber(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("sub", index),
        name=_text(get_flexible_value(record, aliases["name"]), "Subscriber"),
        email=_text(get_flexible_value(record, aliases["email"])),
        subscribed_at=_text(get_flexible_value(record, aliases["subscribed_at"])) or _timestamp(),
    )


def normalize_feedback(record: Mapping[str, Any], index: int = 0) -> Feedback:
    aliases = FIELD_ALIASES["feedback"]
    return Feedback(
        id=_text(get_flexible_value(record, aliases["id"])) or _generated_id("fb", index),
        found_looking=_text(get_flexible_value(record, aliases["found_looking"]), "Yes"),
        improve_website=_text(get_flexible_value(record, aliases["improve_website"])),
        add_remove=_text(get_flexible_value(record, aliases["add_remove"])),
        submitted_at=_text(get_flexible_value(record, aliases["submitted_at"])) or _timestamp(),
        page_path=_text(get_flexible_value(record, aliases["page_path"]), "Home"),
    )


def normalize_mission(record: Mapping[str, Any], index: int = 0) -> MissionStatement:
    aliases = FIELD_ALIASES["mission"]
    return MissionStatement(
        text=_text(get_flexible_value(record, aliases["text"])),
        last_updated=_text(get_flexible_value(record, aliases["last_updated"])) or _timestamp(),
    )
