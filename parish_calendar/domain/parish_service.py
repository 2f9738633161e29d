"""Parish website service layer.

Ties the record store, the spreadsheet web app and the language model
together behind the operations the HTTP API and CLI expose. Event occurrences
are always computed on demand from the stored definitions.

Usage:
    service = ParishService(JsonFileStore("parish.json"), sheets=SheetsClient(url))
    occurrences = service.occurrences(date(2024, 3, 1), date(2024, 3, 31))
    await service.sync_all_from_cloud()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, TypeVar

from pydantic import ValidationError

from ..calendar import normalization
from ..calendar.models import (
    ChurchContact,
    ChurchGroup,
    ChurchLocation,
    ContactRequest,
    EventDefinition,
    Feedback,
    Inspiration,
    KnowledgeEntry,
    MissionStatement,
    Occurrence,
    ParishRecord,
    Subscriber,
    SyncResult,
)
from ..calendar.occurrence_expander import ExpansionConfig, expand_events
from ..core.datetime_utils import DEFAULT_PARISH_TIMEZONE, now_local
from ..core.store import RecordStore
from ..exceptions import LanguageModelError, QuotaExceededError
from ..llm_client import GeminiClient
from ..sheets_client import SheetsClient
from . import chat_context
from .event_filter import (
    DEFAULT_ACTIVE_LOCATIONS,
    CalendarView,
    calendar_view_range,
    filter_by_locations,
    occurrences_on_day,
    sort_occurrences,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=ParishRecord)

MISSION_RECORD_ID = "mission"
INSPIRATION_RECORD_ID = "daily"

CHAT_ERROR_REPLY = (
    "I'm having a little trouble connecting to my knowledge base. Please try again in a moment."
)
CHAT_EMPTY_REPLY = "I'm sorry, I couldn't process that request right now."
CHAT_TEMPERATURE = 0.7

FALLBACK_INSPIRATION = Inspiration(
    message=(
        "When the weight of the world feels heavy, remember that you don't have to carry it "
        "alone. Strength often comes in the quiet moments of turning your worries over to a "
        "higher peace."
    ),
    reference="Matthew 11:28",
    verse_text="Come to me, all you who are weary and burdened, and I will give you rest.",
)

INSPIRATION_PROMPT = (
    "Provide a unique, uplifting inspirational message (2-3 sentences) that addresses common "
    "daily struggles like stress, anxiety, grief, loneliness, or doubt. The tone should be "
    "compassionate and grounded. Support this message with a relevant Bible reference and the "
    'text of the verse itself. Return as JSON with keys: "message", "reference", "verseText".'
)

INSPIRATION_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "message": {
            "type": "STRING",
            "description": "The core inspirational message addressing common struggles",
        },
        "reference": {
            "type": "STRING",
            "description": "The Bible reference (e.g., Matthew 11:28)",
        },
        "verseText": {
            "type": "STRING",
            "description": "The actual text of the referenced verse",
        },
    },
    "required": ["message", "reference", "verseText"],
}

# collection -> row mapper used when pulling from the spreadsheet
CLOUD_COLLECTIONS: dict[str, Callable[[dict[str, Any], int], ParishRecord]] = {
    "subscribers": normalization.normalize_subscriber,
    "events": normalization.normalize_event,
    "groups": normalization.normalize_group,
    "contacts": normalization.normalize_contact,
    "mission": normalization.normalize_mission,
    "feedback": normalization.normalize_feedback,
    "knowledge": normalization.normalize_knowledge,
    "requests": normalization.normalize_request,
}

# spreadsheet tab names that differ from the local collection name
SHEET_NAMES: dict[str, str] = {"subscribers": "subscriber"}


def sheet_name(collection: str) -> str:
    return SHEET_NAMES.get(collection, collection)


@dataclass
class CalendarPage:
    """Occurrences for one month or week view of the calendar."""

    view: CalendarView
    range_start: date
    range_end: date
    occurrences: list[Occurrence] = field(default_factory=list)

    def by_day(self) -> dict[date, list[Occurrence]]:
        """Occurrences grouped by start day, covering every day in the view."""
        days: dict[date, list[Occurrence]] = {}
        day = self.range_start
        while day <= self.range_end:
            days[day] = occurrences_on_day(self.occurrences, day)
            day += timedelta(days=1)
        return days


class ParishService:
    """Operations behind the parish website."""

    def __init__(
        self,
        store: RecordStore,
        sheets: Optional[SheetsClient] = None,
        llm: Optional[GeminiClient] = None,
        settings: Any = None,
    ) -> None:
        """Create the service.

        Args:
            store: Record persistence
            sheets: Optional spreadsheet client; writes are pushed when configured
            llm: Optional language model client for chat and generated content
            settings: Optional Config; supplies timezone and expansion limits
        """
        self.store = store
        self.sheets = sheets
        self.llm = llm
        self.timezone = getattr(settings, "timezone", DEFAULT_PARISH_TIMEZONE)
        self.chat_context_days = getattr(
            settings, "chat_context_days", chat_context.DEFAULT_CONTEXT_DAYS
        )
        self.expansion_config = ExpansionConfig.from_settings(settings)

    # ---- records ----

    def _load(self, collection: str, model: type[RecordT]) -> list[RecordT]:
        records = []
        for raw in self.store.get(collection):
            try:
                records.append(model.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid %s record %s: %s", collection, raw.get("id"), e)
        return records

    async def _save(
        self, collection: str, record: ParishRecord, record_id: Optional[str] = None
    ) -> Optional[SyncResult]:
        """Upsert locally, then push to the spreadsheet when one is configured."""
        payload = record.to_record()
        if record_id is not None:
            payload["id"] = record_id
        self.store.put(collection, payload)

        if self.sheets is None or not self.sheets.configured:
            return None
        result = await self.sheets.sync_entry(sheet_name(collection), payload)
        if not result.success:
            logger.warning("Sync of %s to sheet failed: %s", collection, result.message)
        return result

    def list_events(self) -> list[EventDefinition]:
        return self._load("events", EventDefinition)

    async def save_event(self, event: EventDefinition) -> Optional[SyncResult]:
        logger.info("Saving event %s (%s)", event.id, event.title)
        return await self._save("events", event)

    def delete_event(self, event_id: str) -> bool:
        deleted = self.store.delete("events", event_id)
        if deleted:
            logger.info("Deleted event %s", event_id)
        return deleted

    def list_groups(self) -> list[ChurchGroup]:
        return self._load("groups", ChurchGroup)

    async def save_group(self, group: ChurchGroup) -> Optional[SyncResult]:
        return await self._save("groups", group)

    def list_contacts(self) -> list[ChurchContact]:
        return self._load("contacts", ChurchContact)

    async def save_contact(self, contact: ChurchContact) -> Optional[SyncResult]:
        return await self._save("contacts", contact)

    def list_knowledge(self) -> list[KnowledgeEntry]:
        return self._load("knowledge", KnowledgeEntry)

    async def save_knowledge(self, entry: KnowledgeEntry) -> Optional[SyncResult]:
        return await self._save("knowledge", entry)

    async def add_subscriber(self, subscriber: Subscriber) -> Optional[SyncResult]:
        return await self._save("subscribers", subscriber)

    async def submit_feedback(self, feedback: Feedback) -> Optional[SyncResult]:
        return await self._save("feedback", feedback)

    async def submit_request(self, request: ContactRequest) -> Optional[SyncResult]:
        return await self._save("requests", request)

    def get_mission(self) -> Optional[MissionStatement]:
        missions = self._load("mission", MissionStatement)
        return missions[-1] if missions else None

    async def update_mission(self, text: str) -> Optional[SyncResult]:
        mission = MissionStatement(text=text, last_updated=now_local(self.timezone).isoformat())
        return await self._save("mission", mission, record_id=MISSION_RECORD_ID)

    # ---- occurrences ----

    def occurrences(
        self,
        range_start: date | datetime,
        range_end: date | datetime,
        locations: Optional[Iterable[ChurchLocation]] = None,
    ) -> list[Occurrence]:
        """Expand stored events for a range, filter by church and sort by start."""
        instances = expand_events(self.list_events(), range_start, range_end, self.expansion_config)
        active = DEFAULT_ACTIVE_LOCATIONS if locations is None else locations
        return sort_occurrences(filter_by_locations(instances, active))

    def calendar(
        self,
        view: CalendarView | str,
        current: date | datetime,
        locations: Optional[Iterable[ChurchLocation]] = None,
    ) -> CalendarPage:
        view = CalendarView(view)
        range_start, range_end = calendar_view_range(view, current)
        return CalendarPage(
            view=view,
            range_start=range_start,
            range_end=range_end,
            occurrences=self.occurrences(range_start, range_end, locations),
        )

    # ---- cloud sync ----

    async def sync_all_from_cloud(self) -> dict[str, int]:
        """Pull every collection from the spreadsheet.

        A local collection is only replaced when the spreadsheet returned rows
        for it, so a failed or empty fetch never wipes local data.

        Returns:
            Mapping of collection name to the number of records stored
        """
        if self.sheets is None or not self.sheets.configured:
            logger.info("Cloud sync skipped: no spreadsheet configured")
            return {}

        names = list(CLOUD_COLLECTIONS)
        results = await asyncio.gather(
            *(self.sheets.fetch_sheet_data(sheet_name(name)) for name in names),
            return_exceptions=True,
        )

        counts: dict[str, int] = {}
        for name, rows in zip(names, results):
            if isinstance(rows, BaseException):
                logger.error("Cloud sync of %s failed: %s", name, rows)
                continue
            if not rows:
                continue

            mapper = CLOUD_COLLECTIONS[name]
            if name == "mission":
                mission = mapper(rows[-1], len(rows) - 1).to_record()
                records = [{**mission, "id": MISSION_RECORD_ID}]
            else:
                records = [mapper(row, index).to_record() for index, row in enumerate(rows)]
            self.store.replace(name, records)
            counts[name] = len(records)

        logger.info("Cloud sync complete: %s", counts)
        return counts

    async def push_collection(self, collection: str) -> list[SyncResult]:
        """Push the newest local records of ``collection`` to its sheet."""
        if self.sheets is None or not self.sheets.configured:
            return []
        return await self.sheets.sync_full_table(sheet_name(collection), self.store.get(collection))

    # ---- assistant ----

    def chat_context(self, today: Optional[date] = None) -> str:
        today = today or now_local(self.timezone).date()
        return chat_context.build_upcoming_events_context(
            self.list_events(), today, self.chat_context_days, self.expansion_config
        )

    async def chat(self, message: str) -> str:
        """Answer a visitor's question using the knowledge base and upcoming events."""
        if self.llm is None or not self.llm.configured:
            return CHAT_ERROR_REPLY

        now = now_local(self.timezone)
        instruction = chat_context.build_system_instruction(
            now,
            chat_context.build_knowledge_context(self.list_knowledge()),
            self.chat_context(now.date()),
        )
        try:
            reply = await self.llm.generate_text(
                message, system_instruction=instruction, temperature=CHAT_TEMPERATURE
            )
        except LanguageModelError as e:
            logger.error("Chat request failed: %s", e)
            return CHAT_ERROR_REPLY
        return reply or CHAT_EMPTY_REPLY

    def _cached_inspiration(self, today: date) -> Optional[Inspiration]:
        for raw in self.store.get("inspiration"):
            if raw.get("id") == INSPIRATION_RECORD_ID and raw.get("date") == today.isoformat():
                try:
                    return Inspiration.model_validate(raw)
                except ValidationError:
                    logger.warning("Discarding malformed cached inspiration")
        return None

    def _cache_inspiration(self, today: date, inspiration: Inspiration) -> None:
        record = {**inspiration.to_record(), "id": INSPIRATION_RECORD_ID, "date": today.isoformat()}
        self.store.put("inspiration", record)

    async def daily_inspiration(self) -> Inspiration:
        """Return today's inspirational message, generating it once per day."""
        today = now_local(self.timezone).date()
        cached = self._cached_inspiration(today)
        if cached is not None:
            return cached
        if self.llm is None or not self.llm.configured:
            return FALLBACK_INSPIRATION

        try:
            data = await self.llm.generate_json(INSPIRATION_PROMPT, INSPIRATION_SCHEMA)
            inspiration = Inspiration.model_validate(data)
        except QuotaExceededError:
            logger.warning("Language model quota exceeded; caching fallback inspiration for today")
            self._cache_inspiration(today, FALLBACK_INSPIRATION)
            return FALLBACK_INSPIRATION
        except (LanguageModelError, ValidationError) as e:
            logger.error("Error fetching inspiration: %s", e)
            return FALLBACK_INSPIRATION

        self._cache_inspiration(today, inspiration)
        return inspiration

    async def refine_mission(self, text: str) -> str:
        """Ask the model for a polished mission statement; the input on failure."""
        if self.llm is None or not self.llm.configured:
            return text
        prompt = (
            f'Current mission statement: "{text}". Please refine this to be more professional, '
            "welcoming, and focused on the unity of Dollar and Muckhart churches. Keep it concise."
        )
        try:
            refined = await self.llm.generate_text(prompt)
        except LanguageModelError as e:
            logger.error("Error refining mission: %s", e)
            return text
        return refined or text
