"""Shared fixtures for parish_calendar tests."""

from collections.abc import AsyncIterator, Callable, Generator
from typing import Any

import httpx
import pytest

from parish_calendar.calendar.models import EventDefinition
from parish_calendar.core.http_client import close_all_clients
from parish_calendar.core.store import InMemoryStore

# Variables read by config loading, logging and the clock
PARISH_ENV_VARS = (
    "PARISH_CALENDAR_TEST_TIME",
    "PARISH_DEBUG",
    "PARISH_LOG_LEVEL",
    "PARISH_SHEETS_URL",
    "PARISH_STORE_PATH",
    "PARISH_SERVER_BIND",
    "PARISH_SERVER_PORT",
    "PARISH_TIMEZONE",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "API_KEY",
)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear parish environment variables so host settings never leak into tests."""
    for name in PARISH_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


@pytest.fixture
def frozen_now(monkeypatch: Any) -> str:
    """Pin the parish clock to Tuesday 2024-03-05 09:00 local time."""
    value = "2024-03-05T09:00:00"
    monkeypatch.setenv("PARISH_CALENDAR_TEST_TIME", value)
    return value


@pytest.fixture
def make_event() -> Callable[..., EventDefinition]:
    """Factory for EventDefinitions with sensible defaults."""

    def _make(**overrides: Any) -> EventDefinition:
        fields: dict[str, Any] = {
            "id": "evt-1",
            "title": "Morning Worship",
            "description": "All welcome",
            "event_date": "2024-03-03",
            "start_time": "10:00",
            "end_time": "11:00",
            "location": "Dollar",
            "tag": "Dollar",
        }
        fields.update(overrides)
        return EventDefinition(**fields)

    return _make


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose requests are answered by ``handler``."""

    def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client
