"""Unit tests for parish_calendar.domain.parish_service."""

import json
from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest

from parish_calendar.calendar.models import ChurchLocation, KnowledgeEntry, Subscriber
from parish_calendar.config_loader import Config
from parish_calendar.domain.event_filter import CalendarView
from parish_calendar.domain.parish_service import (
    CHAT_EMPTY_REPLY,
    CHAT_ERROR_REPLY,
    FALLBACK_INSPIRATION,
    ParishService,
)
from parish_calendar.llm_client import GeminiClient
from parish_calendar.sheets_client import SheetsClient

pytestmark = pytest.mark.unit

SHEETS_URL = "https://script.google.com/macros/s/abc123/exec"


def _gemini_reply(text):
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class TestRecords:
    async def test_save_event_without_sheets(self, memory_store, make_event):
        service = ParishService(memory_store)

        result = await service.save_event(make_event())

        assert result is None
        assert [e.id for e in service.list_events()] == ["evt-1"]
        assert memory_store.get("events")[0]["eventDate"] == "2024-03-03"

    async def test_save_event_pushes_to_sheet(self, memory_store, make_event, mock_http):
        pushed = []

        def handler(request):
            pushed.append(request)
            return httpx.Response(200)

        sheets = SheetsClient(SHEETS_URL, client=mock_http(handler))
        service = ParishService(memory_store, sheets=sheets)

        result = await service.save_event(make_event())

        assert result.success is True
        assert pushed[0].url.params["sheet"] == "events"
        payload = json.loads(parse_qs(pushed[0].content.decode())["payload"][0])
        assert payload["id"] == "evt-1"
        assert payload["startTime"] == "10:00"

    async def test_failed_push_keeps_local_record(self, memory_store, make_event, mock_http):
        sheets = SheetsClient(SHEETS_URL, client=mock_http(lambda r: httpx.Response(500)))
        service = ParishService(memory_store, sheets=sheets)

        result = await service.save_event(make_event())

        assert result.success is False
        assert len(service.list_events()) == 1

    async def test_add_subscriber_pushes_to_subscriber_sheet(self, memory_store, mock_http):
        pushed = []

        def handler(request):
            pushed.append(request)
            return httpx.Response(200)

        service = ParishService(memory_store, sheets=SheetsClient(SHEETS_URL, client=mock_http(handler)))

        await service.add_subscriber(Subscriber(id="sub-a", email="a@example.org"))

        assert pushed[0].url.params["sheet"] == "subscriber"
        payload = json.loads(parse_qs(pushed[0].content.decode())["payload"][0])
        assert payload["sheet"] == "subscriber"
        assert memory_store.get("subscribers")[0]["id"] == "sub-a"

    def test_delete_event(self, memory_store, make_event):
        memory_store.put("events", make_event().to_record())
        service = ParishService(memory_store)

        assert service.delete_event("evt-1") is True
        assert service.delete_event("evt-1") is False

    def test_invalid_stored_records_are_skipped(self, memory_store, make_event):
        memory_store.put("events", {"title": "no id"})
        memory_store.put("events", make_event().to_record())

        assert [e.id for e in ParishService(memory_store).list_events()] == ["evt-1"]

    async def test_mission_round_trip(self, memory_store, frozen_now):
        service = ParishService(memory_store)

        await service.update_mission("Serving the Hillfoots")
        await service.update_mission("Serving Dollar and Muckhart")

        mission = service.get_mission()
        assert mission.text == "Serving Dollar and Muckhart"
        assert mission.last_updated == "2024-03-05T09:00:00"
        assert len(memory_store.get("mission")) == 1

    async def test_other_collections(self, memory_store):
        service = ParishService(memory_store)

        await service.add_subscriber(Subscriber(id="sub-0", email="a@example.org"))
        await service.save_knowledge(KnowledgeEntry(id="kb-0", title="Baptisms"))

        assert memory_store.get("subscribers")[0]["email"] == "a@example.org"
        assert [k.title for k in service.list_knowledge()] == ["Baptisms"]


class TestOccurrences:
    @pytest.fixture
    def service(self, memory_store, make_event):
        for event in (
            make_event(id="dollar", tag="Dollar", is_recurring=True, recurrence="Weekly"),
            make_event(id="muckhart", tag="Muckhart", event_date="2024-03-12", start_time="19:00"),
            make_event(id="both", tag="Both", event_date="2024-03-12", start_time="09:00"),
        ):
            memory_store.put("events", event.to_record())
        return ParishService(memory_store)

    def test_default_filter_shows_both_churches_sorted(self, service):
        occurrences = service.occurrences(date(2024, 3, 10), date(2024, 3, 16))

        assert [(o.id, o.instance_start.day) for o in occurrences][:4] == [
            ("dollar", 10),
            ("both", 12),
            ("muckhart", 12),
            ("dollar", 17),
        ]

    def test_location_filter(self, service):
        occurrences = service.occurrences(
            date(2024, 3, 10), date(2024, 3, 16), [ChurchLocation.MUCKHART]
        )

        assert {o.id for o in occurrences} == {"muckhart", "both"}

    def test_month_calendar_page(self, service):
        page = service.calendar(CalendarView.MONTH, date(2024, 3, 15))
        days = page.by_day()

        assert page.range_start == date(2024, 2, 25)
        assert page.range_end == date(2024, 4, 6)
        assert len(days) == 42
        assert [o.id for o in days[date(2024, 3, 12)]] == ["both", "muckhart"]
        assert [o.id for o in days[date(2024, 3, 31)]] == ["dollar"]

    def test_week_calendar_page(self, service):
        page = service.calendar("week", date(2024, 3, 13))

        assert list(page.by_day()) == [date(2024, 3, day) for day in range(10, 17)]

    def test_settings_limit_iterations(self, memory_store, make_event):
        memory_store.put(
            "events", make_event(is_recurring=True, recurrence="Weekly").to_record()
        )
        service = ParishService(memory_store, settings=Config(max_series_iterations=2))

        assert len(service.occurrences(date(2024, 3, 1), date(2024, 3, 31))) == 2


class TestCloudSync:
    async def test_unconfigured_sync_is_noop(self, memory_store):
        assert await ParishService(memory_store, sheets=SheetsClient(None)).sync_all_from_cloud() == {}

    async def test_replaces_only_collections_with_rows(self, memory_store, mock_http):
        memory_store.put("groups", {"id": "g-local", "name": "Guild"})
        memory_store.put("events", {"id": "stale", "title": "Old"})
        sheets_rows = {
            "events": [
                {"Title": "Worship", "Date": "2024-03-10", "Time": "10:00"},
                {"Title": "Choir", "Date": "2024-03-12", "Recurrence": "Weekly"},
            ],
            "mission": [{"text": "Old mission"}, {"text": "New mission"}],
        }

        def handler(request):
            return httpx.Response(200, json=sheets_rows.get(request.url.params["sheet"], []))

        service = ParishService(memory_store, sheets=SheetsClient(SHEETS_URL, client=mock_http(handler)))

        counts = await service.sync_all_from_cloud()

        assert counts == {"events": 2, "mission": 1}
        assert [e.title for e in service.list_events()] == ["Worship", "Choir"]
        assert service.list_events()[1].is_recurring is True
        assert service.get_mission().text == "New mission"
        assert memory_store.get("mission")[0]["id"] == "mission"
        assert memory_store.get("groups") == [{"id": "g-local", "name": "Guild"}]

    async def test_subscribers_use_singular_sheet(self, memory_store, mock_http):
        requested = []

        def handler(request):
            sheet = request.url.params["sheet"]
            requested.append(sheet)
            if sheet == "subscriber":
                return httpx.Response(200, json=[{"Email": "a@example.org", "Name": "Ann"}])
            return httpx.Response(200, json=[])

        service = ParishService(memory_store, sheets=SheetsClient(SHEETS_URL, client=mock_http(handler)))

        counts = await service.sync_all_from_cloud()

        assert "subscribers" not in requested
        assert "subscriber" in requested
        assert counts == {"subscribers": 1}
        assert memory_store.get("subscribers")[0]["email"] == "a@example.org"

    async def test_one_failing_collection_does_not_stop_others(self, memory_store, monkeypatch):
        sheets = SheetsClient(SHEETS_URL)

        async def fetch(sheet):
            if sheet == "events":
                raise RuntimeError("boom")
            if sheet == "groups":
                return [{"name": "Guild", "church": "Muckhart"}]
            return []

        monkeypatch.setattr(sheets, "fetch_sheet_data", fetch)
        service = ParishService(memory_store, sheets=sheets)

        counts = await service.sync_all_from_cloud()

        assert counts == {"groups": 1}
        assert service.list_groups()[0].church == ChurchLocation.MUCKHART

    async def test_push_collection(self, memory_store, mock_http):
        memory_store.put("subscribers", {"id": "sub-0"})
        memory_store.put("subscribers", {"id": "sub-1"})
        seen = []

        def handler(request):
            seen.append(request.url.params["sheet"])
            return httpx.Response(200)

        sheets = SheetsClient(SHEETS_URL, client=mock_http(handler))

        results = await ParishService(memory_store, sheets=sheets).push_collection("subscribers")

        assert len(results) == 2
        assert seen == ["subscriber", "subscriber"]
        assert await ParishService(memory_store).push_collection("subscribers") == []


class TestAssistant:
    async def test_chat_sends_context(self, memory_store, make_event, mock_http, frozen_now):
        memory_store.put("events", make_event(is_recurring=True, recurrence="Weekly").to_record())
        memory_store.put("knowledge", KnowledgeEntry(id="kb-0", title="Parking", content="Free").to_record())
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return _gemini_reply("Worship is at 10:00 AM on Sunday.")

        llm = GeminiClient("k", client=mock_http(handler))
        service = ParishService(memory_store, llm=llm)

        reply = await service.chat("When is worship?")

        assert reply == "Worship is at 10:00 AM on Sunday."
        instruction = seen[0]["systemInstruction"]["parts"][0]["text"]
        assert "Today's date is Tuesday, March 5, 2024." in instruction
        assert "TOPIC: Parking" in instruction
        assert "Morning Worship at Dollar (Dollar Parish) on Sunday, March 10" in instruction
        assert seen[0]["generationConfig"]["temperature"] == 0.7

    async def test_chat_failure_reply(self, memory_store, mock_http):
        llm = GeminiClient("k", client=mock_http(lambda r: httpx.Response(500)))

        assert await ParishService(memory_store, llm=llm).chat("hi") == CHAT_ERROR_REPLY
        assert await ParishService(memory_store).chat("hi") == CHAT_ERROR_REPLY

    async def test_chat_string_error_body_reply(self, memory_store, mock_http):
        body = {"error": "API key not valid"}
        llm = GeminiClient("k", client=mock_http(lambda r: httpx.Response(400, json=body)))

        assert await ParishService(memory_store, llm=llm).chat("hi") == CHAT_ERROR_REPLY

    async def test_chat_empty_reply(self, memory_store, mock_http):
        llm = GeminiClient("k", client=mock_http(lambda r: _gemini_reply("")))

        assert await ParishService(memory_store, llm=llm).chat("hi") == CHAT_EMPTY_REPLY

    def test_chat_context_uses_given_day(self, memory_store, make_event):
        memory_store.put("events", make_event(event_date="2024-03-20").to_record())
        service = ParishService(memory_store)

        assert "Wednesday, March 20" in service.chat_context(date(2024, 3, 5))
        assert service.chat_context(date(2024, 3, 21)) == ""


class TestDailyInspiration:
    async def test_generated_once_per_day(self, memory_store, mock_http, frozen_now):
        calls = []

        def handler(request):
            calls.append(request)
            return _gemini_reply(
                json.dumps({"message": "Be still", "reference": "Psalm 46:10", "verseText": "Be still"})
            )

        service = ParishService(memory_store, llm=GeminiClient("k", client=mock_http(handler)))

        first = await service.daily_inspiration()
        second = await service.daily_inspiration()

        assert first.reference == "Psalm 46:10"
        assert second == first
        assert len(calls) == 1
        assert memory_store.get("inspiration")[0]["date"] == "2024-03-05"

    async def test_new_day_regenerates(self, memory_store, mock_http, monkeypatch):
        calls = []

        def handler(request):
            calls.append(request)
            return _gemini_reply(json.dumps({"message": "m", "reference": "r", "verseText": "v"}))

        service = ParishService(memory_store, llm=GeminiClient("k", client=mock_http(handler)))

        monkeypatch.setenv("PARISH_CALENDAR_TEST_TIME", "2024-03-05T09:00:00")
        await service.daily_inspiration()
        monkeypatch.setenv("PARISH_CALENDAR_TEST_TIME", "2024-03-06T09:00:00")
        await service.daily_inspiration()

        assert len(calls) == 2
        assert len(memory_store.get("inspiration")) == 1

    async def test_quota_error_caches_fallback(self, memory_store, mock_http, frozen_now):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        service = ParishService(memory_store, llm=GeminiClient("k", client=mock_http(handler)))

        assert await service.daily_inspiration() == FALLBACK_INSPIRATION
        assert await service.daily_inspiration() == FALLBACK_INSPIRATION
        assert len(calls) == 1

    async def test_other_errors_do_not_cache(self, memory_store, mock_http, frozen_now):
        calls = []

        def handler(request):
            calls.append(request)
            return _gemini_reply('{"message": "missing fields"}')

        service = ParishService(memory_store, llm=GeminiClient("k", client=mock_http(handler)))

        assert await service.daily_inspiration() == FALLBACK_INSPIRATION
        assert await service.daily_inspiration() == FALLBACK_INSPIRATION
        assert len(calls) == 2
        assert memory_store.get("inspiration") == []

    async def test_without_model_returns_fallback(self, memory_store):
        assert await ParishService(memory_store).daily_inspiration() == FALLBACK_INSPIRATION


class TestRefineMission:
    async def test_refined_text(self, memory_store, mock_http):
        llm = GeminiClient("k", client=mock_http(lambda r: _gemini_reply("United in faith.")))

        assert await ParishService(memory_store, llm=llm).refine_mission("We are a church") == (
            "United in faith."
        )

    async def test_failure_returns_original(self, memory_store, mock_http):
        llm = GeminiClient("k", client=mock_http(lambda r: httpx.Response(503)))

        assert await ParishService(memory_store, llm=llm).refine_mission("Original") == "Original"
