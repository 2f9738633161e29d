"""Data models for parish calendar records - events, occurrences and site content."""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from ..core.datetime_utils import parse_local_date, parse_local_time


class ChurchLocation(str, Enum):
    """Church a record belongs to, or both of them."""

    DOLLAR = "Dollar"
    MUCKHART = "Muckhart"
    BOTH = "Both"
    ALL = "All"


class RecurrenceType(str, Enum):
    """Supported recurrence rules."""

    NONE = "None"
    WEEKLY = "Weekly"
    BIWEEKLY = "BiWeekly"
    MONTHLY_RELATIVE = "MonthlyRelative"


class ParishRecord(BaseModel):
    """Shared configuration for stored records.

    Attribute names are snake_case; the external store and spreadsheet use
    camelCase, which is accepted on input and emitted with ``by_alias=True``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape kept in the store."""
        return self.model_dump(by_alias=True, mode="json")


class EventDefinition(ParishRecord):
    """Stored description of one event or event series."""

    id: str = Field(..., description="Event ID")
    title: str = Field(default="", description="Event title")
    description: str = Field(default="", description="Free-text details")

    # Anchor date and time of day (local wall clock, no zone)
    event_date: Optional[date] = Field(default=None, description="First occurrence date")
    start_time: Optional[time] = Field(default=None, description="Start time of day")
    end_time: Optional[time] = Field(default=None, description="End time of day")

    location: ChurchLocation = Field(default=ChurchLocation.ALL, description="Venue")
    tag: ChurchLocation = Field(default=ChurchLocation.ALL, description="Parish tag")

    # Recurrence
    is_recurring: bool = Field(default=False, description="Recurring series flag")
    recurrence: RecurrenceType = Field(default=RecurrenceType.NONE, description="Recurrence rule")
    day_of_week: Optional[int] = Field(
        default=None, ge=0, le=6, description="Weekday for MonthlyRelative, Sunday=0"
    )
    week_of_month: Optional[int] = Field(
        default=None, ge=1, le=5, description="1-4 for Nth weekday, 5 for last"
    )
    recurrence_end_date: Optional[date] = Field(
        default=None, description="Last date a series may produce occurrences on"
    )

    @field_validator("event_date", "recurrence_end_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Optional[date]:
        return parse_local_date(value)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Optional[time]:
        return parse_local_time(value)

    @field_validator("recurrence", mode="before")
    @classmethod
    def _parse_recurrence(cls, value: Any) -> RecurrenceType:
        if isinstance(value, RecurrenceType):
            return value
        text = str(value or "").replace("-", "").replace(" ", "").lower()
        for member in RecurrenceType:
            if member.value.lower() == text:
                return member
        return RecurrenceType.NONE

    @field_serializer("start_time", "end_time", when_used="unless-none")
    def serialize_time(self, value: time) -> str:
        """Serialize times of day as HH:MM."""
        return value.strftime("%H:%M")

    @property
    def recurs(self) -> bool:
        """True when the definition describes a series rather than one event."""
        return self.is_recurring and self.recurrence != RecurrenceType.NONE


class Occurrence(EventDefinition):
    """Concrete dated materialization of an EventDefinition.

    Computed on demand for a view range and never persisted.
    """

    instance_start: datetime = Field(..., description="Local start of this occurrence")
    instance_end: datetime = Field(..., description="Local end of this occurrence")


class ChurchGroup(ParishRecord):
    """Parish group meeting at one of the churches."""

    id: str
    name: str = "Unnamed Group"
    description: str = ""
    church: ChurchLocation = ChurchLocation.DOLLAR
    meeting_time: str = ""
    contact_person: str = ""


class ChurchContact(ParishRecord):
    """Person listed on the contacts page."""

    id: str
    name: str = "Unknown Name"
    title: str = ""
    role: str = "Volunteer"
    email: str = ""
    phone: str = ""
    image_url: str = ""
    display_publicly: bool = True


class Subscriber(ParishRecord):
    """Newsletter subscriber."""

    id: str
    name: str = "Subscriber"
    email: str = ""
    subscribed_at: str = ""


class Feedback(ParishRecord):
    """Website feedback form submission."""

    id: str
    found_looking: str = "Yes"
    improve_website: str = ""
    add_remove: str = ""
    submitted_at: str = ""
    page_path: str = "Home"


class ContactRequest(ParishRecord):
    """Message sent through the contact form."""

    id: str
    name: str = "Anonymous"
    email: str = ""
    phone: str = ""
    subject: str = "General"
    message: str = ""
    submitted_at: str = ""


class KnowledgeEntry(ParishRecord):
    """Knowledge base article used as chat assistant context."""

    id: str
    title: str = "Untitled Entry"
    content: str = ""
    attachment_url: str = ""
    attachment_name: str = ""
    last_updated: str = ""


class MissionStatement(ParishRecord):
    """Parish mission statement text."""

    text: str = ""
    last_updated: str = ""


class Inspiration(ParishRecord):
    """Daily inspirational message with its supporting Bible verse."""

    message: str
    reference: str
    verse_text: str


class SyncResult(BaseModel):
    """Outcome of one request to the spreadsheet web app."""

    success: bool
    message: str
    timestamp: str
