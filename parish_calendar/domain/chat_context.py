"""Plain-text context for the parish chat assistant.

Renders the upcoming-events list and the knowledge base into the system
instruction sent with every chat message.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Optional

from ..calendar.models import EventDefinition, KnowledgeEntry, Occurrence
from ..calendar.occurrence_expander import ExpansionConfig, expand_events
from ..core.datetime_utils import start_of_day
from .event_filter import sort_occurrences

DEFAULT_CONTEXT_DAYS = 30
NO_EVENTS_TEXT = "No upcoming events scheduled."


def _format_clock(moment: datetime) -> str:
    """12-hour clock without a leading zero, e.g. "9:05 AM"."""
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d} {'AM' if moment.hour < 12 else 'PM'}"


def _format_day(moment: date) -> str:
    """e.g. "Sunday, March 10"."""
    return f"{moment.strftime('%A, %B')} {moment.day}"


def format_occurrence_line(occurrence: Occurrence) -> str:
    start = occurrence.instance_start
    return (
        f"- {occurrence.title} at {occurrence.location.value} "
        f"({occurrence.tag.value} Parish) on {_format_day(start)} at {_format_clock(start)}. "
        f"Details: {occurrence.description}"
    )


def build_upcoming_events_context(
    events: Iterable[EventDefinition],
    today: date | datetime,
    days: int = DEFAULT_CONTEXT_DAYS,
    config: Optional[ExpansionConfig] = None,
) -> str:
    """Render occurrences from ``today`` to ``today + days`` one per line, soonest first.

    The expansion upper bound is widened to the end of that month, so the
    list can reach a little past ``days``.
    """
    start = start_of_day(today)
    instances = expand_events(events, start, start + timedelta(days=days), config)
    return "\n".join(format_occurrence_line(o) for o in sort_occurrences(instances))


def build_knowledge_context(entries: Iterable[KnowledgeEntry]) -> str:
    return "\n\n".join(f"TOPIC: {entry.title}\nCONTENT: {entry.content}" for entry in entries)


def build_system_instruction(
    today: date | datetime, knowledge_context: str, events_context: str
) -> str:
    """Assemble the assistant persona prompt."""
    current_date = f"{_format_day(today)}, {today.year}"
    return (
        "You are the East Hillfoots Parish AI Assistant. Your goal is to help visitors "
        "and parishioners with information about Dollar and Muckhart churches.\n\n"
        f"Today's date is {current_date}.\n\n"
        "Use the following information to answer questions:\n\n"
        "### PARISH KNOWLEDGE BASE ###\n"
        f"{knowledge_context}\n\n"
        "### UPCOMING EVENTS (NEXT 30 DAYS) ###\n"
        f"{events_context or NO_EVENTS_TEXT}\n\n"
        "If the answer is not in the knowledge base or calendar, politely inform them you "
        "don't have that specific information yet and suggest they contact the parish "
        "secretary.\n"
        "Keep your tone warm, welcoming, and professional.\n"
        "If asked for spiritual advice, provide a compassionate response and suggest "
        "speaking with the Minister for deeper guidance."
    )
