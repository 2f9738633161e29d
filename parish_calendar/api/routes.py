"""JSON API routes for parish_calendar."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web
from pydantic import ValidationError

from ..calendar.exporters import google_calendar_link, occurrences_to_ics, outlook_calendar_link
from ..calendar.models import ChurchLocation, Occurrence, ParishRecord
from ..calendar.normalization import (
    normalize_contact,
    normalize_event,
    normalize_feedback,
    normalize_group,
    normalize_knowledge,
    normalize_request,
    normalize_subscriber,
)
from ..config_loader import Config
from ..core.datetime_utils import now_local, parse_local_date
from ..domain.event_filter import CalendarView
from ..domain.parish_service import CLOUD_COLLECTIONS, ParishService
from ..exceptions import RequestValidationError, StoreError

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("parish_service", ParishService)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Map boundary exceptions to JSON error responses."""
    try:
        return await handler(request)
    except RequestValidationError as e:
        return web.json_response({"error": str(e)}, status=400)
    except ValidationError as e:
        return web.json_response({"error": f"invalid record: {e}"}, status=400)
    except StoreError:
        logger.exception("Record store failure handling %s", request.path)
        return web.json_response({"error": "failed to persist record"}, status=500)


def parse_date_param(request: web.Request, name: str, default: Optional[date] = None) -> date:
    """Read a ``YYYY-MM-DD`` query parameter.

    Raises:
        RequestValidationError: If the parameter is missing without a default or malformed
    """
    raw = request.query.get(name)
    if raw is None or raw == "":
        if default is None:
            raise RequestValidationError(f"missing query parameter: {name}")
        return default
    parsed = parse_local_date(raw)
    if parsed is None:
        raise RequestValidationError(f"invalid date for {name}: {raw!r} (expected YYYY-MM-DD)")
    return parsed


def parse_locations(raw: Optional[str]) -> Optional[list[ChurchLocation]]:
    """Parse a comma-separated church filter; None when the parameter is absent."""
    if raw is None:
        return None
    locations = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        match = next((loc for loc in ChurchLocation if loc.value.lower() == name), None)
        if match is None:
            raise RequestValidationError(f"unknown location: {part.strip()!r}")
        locations.append(match)
    return locations


async def read_json_object(request: web.Request) -> dict[str, Any]:
    try:
        data = await request.json()
    except ValueError as e:
        raise RequestValidationError("invalid json") from e
    if not isinstance(data, dict):
        raise RequestValidationError("request body must be a JSON object")
    return data


def occurrence_to_api(occurrence: Occurrence, tz_name: str) -> dict[str, Any]:
    model = occurrence.to_record()
    model["links"] = {
        "google": google_calendar_link(occurrence, tz_name),
        "outlook": outlook_calendar_link(occurrence),
    }
    return model


def _sync_to_api(result: Any) -> Optional[dict[str, Any]]:
    return None if result is None else result.model_dump()


def _created(key: str, record: ParishRecord, result: Any) -> web.Response:
    return web.json_response({key: record.to_record(), "sync": _sync_to_api(result)}, status=201)


def register_api_routes(app: web.Application, service: ParishService, config: Config) -> None:
    """Register the parish JSON API.

    Args:
        app: aiohttp web application
        service: Service answering every route
        config: Application configuration (timezone for exports and "today")
    """
    tz_name = config.timezone

    def _today() -> date:
        return now_local(tz_name).date()

    def _query_range(request: web.Request) -> tuple[date, date]:
        range_start = parse_date_param(request, "start")
        range_end = parse_date_param(request, "end")
        if range_end < range_start:
            raise RequestValidationError("end must not be before start")
        return range_start, range_end

    async def health_check(_request: web.Request) -> web.Response:
        from .. import __version__

        return web.json_response(
            {
                "status": "ok",
                "version": __version__,
                "server_time_iso": now_local(tz_name).isoformat(),
                "event_count": len(service.list_events()),
            }
        )

    async def list_events(_request: web.Request) -> web.Response:
        return web.json_response({"events": [e.to_record() for e in service.list_events()]})

    async def save_event(request: web.Request) -> web.Response:
        event = normalize_event(await read_json_object(request))
        return _created("event", event, await service.save_event(event))

    async def delete_event(request: web.Request) -> web.Response:
        event_id = request.match_info["event_id"]
        if not service.delete_event(event_id):
            return web.json_response({"error": f"event not found: {event_id}"}, status=404)
        return web.json_response({"deleted": True, "id": event_id})

    async def list_occurrences(request: web.Request) -> web.Response:
        range_start, range_end = _query_range(request)
        locations = parse_locations(request.query.get("locations"))
        occurrences = service.occurrences(range_start, range_end, locations)
        logger.debug(
            "/api/occurrences %s..%s returned %d", range_start, range_end, len(occurrences)
        )
        return web.json_response(
            {
                "range_start": range_start.isoformat(),
                "range_end": range_end.isoformat(),
                "occurrences": [occurrence_to_api(o, tz_name) for o in occurrences],
            }
        )

    async def calendar_view(request: web.Request) -> web.Response:
        view_name = request.query.get("view", CalendarView.MONTH.value)
        try:
            view = CalendarView(view_name)
        except ValueError as e:
            raise RequestValidationError(f"unknown view: {view_name!r}") from e
        current = parse_date_param(request, "date", default=_today())
        page = service.calendar(view, current, parse_locations(request.query.get("locations")))
        return web.json_response(
            {
                "view": page.view.value,
                "range_start": page.range_start.isoformat(),
                "range_end": page.range_end.isoformat(),
                "days": [
                    {
                        "date": day.isoformat(),
                        "occurrences": [occurrence_to_api(o, tz_name) for o in items],
                    }
                    for day, items in page.by_day().items()
                ],
            }
        )

    async def export_ics(request: web.Request) -> web.Response:
        range_start, range_end = _query_range(request)
        occurrences = service.occurrences(
            range_start, range_end, parse_locations(request.query.get("locations"))
        )
        body = occurrences_to_ics(occurrences, tz_name, calendar_name="East Hillfoots Parish")
        return web.Response(
            body=body,
            content_type="text/calendar",
            charset="utf-8",
            headers={"Content-Disposition": 'attachment; filename="parish-events.ics"'},
        )

    async def chat_context(_request: web.Request) -> web.Response:
        return web.json_response({"context": service.chat_context(_today())})

    async def chat(request: web.Request) -> web.Response:
        data = await read_json_object(request)
        message = str(data.get("message") or "").strip()
        if not message:
            raise RequestValidationError("missing message")
        return web.json_response({"reply": await service.chat(message)})

    async def inspiration(_request: web.Request) -> web.Response:
        result = await service.daily_inspiration()
        return web.json_response(result.to_record())

    async def refine_mission(request: web.Request) -> web.Response:
        data = await read_json_object(request)
        text = str(data.get("text") or "").strip()
        if not text:
            mission = service.get_mission()
            text = mission.text if mission else ""
        if not text:
            raise RequestValidationError("missing text")
        return web.json_response({"original": text, "refined": await service.refine_mission(text)})

    async def add_subscriber(request: web.Request) -> web.Response:
        subscriber = normalize_subscriber(await read_json_object(request))
        if not subscriber.email:
            raise RequestValidationError("missing email")
        return _created("subscriber", subscriber, await service.add_subscriber(subscriber))

    async def submit_feedback(request: web.Request) -> web.Response:
        feedback = normalize_feedback(await read_json_object(request))
        return _created("feedback", feedback, await service.submit_feedback(feedback))

    async def list_groups(_request: web.Request) -> web.Response:
        return web.json_response({"groups": [g.to_record() for g in service.list_groups()]})

    async def save_group(request: web.Request) -> web.Response:
        group = normalize_group(await read_json_object(request))
        return _created("group", group, await service.save_group(group))

    async def list_contacts(_request: web.Request) -> web.Response:
        return web.json_response({"contacts": [c.to_record() for c in service.list_contacts()]})

    async def save_contact(request: web.Request) -> web.Response:
        contact = normalize_contact(await read_json_object(request))
        return _created("contact", contact, await service.save_contact(contact))

    async def list_knowledge(_request: web.Request) -> web.Response:
        return web.json_response({"knowledge": [k.to_record() for k in service.list_knowledge()]})

    async def save_knowledge(request: web.Request) -> web.Response:
        entry = normalize_knowledge(await read_json_object(request))
        return _created("entry", entry, await service.save_knowledge(entry))

    async def submit_request(request: web.Request) -> web.Response:
        contact_request = normalize_request(await read_json_object(request))
        if not contact_request.message:
            raise RequestValidationError("missing message")
        if not contact_request.email:
            raise RequestValidationError("missing email")
        return _created("request", contact_request, await service.submit_request(contact_request))

    async def get_mission(_request: web.Request) -> web.Response:
        mission = service.get_mission()
        return web.json_response({"mission": mission.to_record() if mission else None})

    async def update_mission(request: web.Request) -> web.Response:
        data = await read_json_object(request)
        text = str(data.get("text") or "").strip()
        if not text:
            raise RequestValidationError("missing text")
        result = await service.update_mission(text)
        mission = service.get_mission()
        return web.json_response(
            {"mission": mission.to_record() if mission else None, "sync": _sync_to_api(result)}
        )

    async def push_collection(request: web.Request) -> web.Response:
        collection = request.match_info["collection"]
        if collection not in CLOUD_COLLECTIONS:
            return web.json_response({"error": f"unknown collection: {collection}"}, status=404)
        results = await service.push_collection(collection)
        logger.info("Pushed %d %s records to the spreadsheet", len(results), collection)
        return web.json_response(
            {"collection": collection, "results": [r.model_dump() for r in results]}
        )

    async def sync(_request: web.Request) -> web.Response:
        counts = await service.sync_all_from_cloud()
        return web.json_response({"synced": counts})

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/events", list_events)
    app.router.add_post("/api/events", save_event)
    app.router.add_delete("/api/events/{event_id}", delete_event)
    app.router.add_get("/api/occurrences", list_occurrences)
    app.router.add_get("/api/occurrences.ics", export_ics)
    app.router.add_get("/api/calendar", calendar_view)
    app.router.add_get("/api/chat/context", chat_context)
    app.router.add_post("/api/chat", chat)
    app.router.add_get("/api/inspiration", inspiration)
    app.router.add_post("/api/mission/refine", refine_mission)
    app.router.add_post("/api/subscribers", add_subscriber)
    app.router.add_post("/api/feedback", submit_feedback)
    app.router.add_get("/api/groups", list_groups)
    app.router.add_post("/api/groups", save_group)
    app.router.add_get("/api/contacts", list_contacts)
    app.router.add_post("/api/contacts", save_contact)
    app.router.add_get("/api/knowledge", list_knowledge)
    app.router.add_post("/api/knowledge", save_knowledge)
    app.router.add_post("/api/requests", submit_request)
    app.router.add_get("/api/mission", get_mission)
    app.router.add_put("/api/mission", update_mission)
    app.router.add_post("/api/sync", sync)
    app.router.add_post("/api/push/{collection}", push_collection)

    logger.debug("Registered parish API routes")
