"""Unit tests for parish_calendar.llm_client."""

import json

import httpx
import pytest

from parish_calendar.exceptions import LanguageModelError, QuotaExceededError
from parish_calendar.llm_client import GeminiClient

pytestmark = pytest.mark.unit


def _reply(text):
    return httpx.Response(
        200, json={"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}
    )


class TestGenerateText:
    async def test_returns_joined_parts(self, mock_http):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}}]},
            )

        client = GeminiClient("key-123", model="test-model", client=mock_http(handler))

        reply = await client.generate_text(
            "When is worship?", system_instruction="Be kind", temperature=0.7
        )

        assert reply == "Hello there"
        request = seen[0]
        assert request.url.path.endswith("/models/test-model:generateContent")
        assert request.headers["x-goog-api-key"] == "key-123"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "When is worship?"
        assert body["systemInstruction"]["parts"][0]["text"] == "Be kind"
        assert body["generationConfig"]["temperature"] == 0.7

    async def test_optional_fields_are_omitted(self, mock_http):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return _reply("ok")

        await GeminiClient("k", client=mock_http(handler)).generate_text("hi")

        assert "systemInstruction" not in seen[0]
        assert "generationConfig" not in seen[0]

    async def test_no_candidates_gives_empty_text(self, mock_http):
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(200, json={})))

        assert await client.generate_text("hi") == ""

    async def test_missing_key_raises_without_request(self, mock_http):
        calls = []
        client = GeminiClient(None, client=mock_http(calls.append))

        with pytest.raises(LanguageModelError):
            await client.generate_text("hi")
        assert calls == []
        assert client.configured is False

    async def test_http_429_is_quota_error(self, mock_http):
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(429)))

        with pytest.raises(QuotaExceededError):
            await client.generate_text("hi")

    async def test_resource_exhausted_status_is_quota_error(self, mock_http):
        body = {"error": {"code": 400, "status": "RESOURCE_EXHAUSTED", "message": "quota"}}
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(400, json=body)))

        with pytest.raises(QuotaExceededError):
            await client.generate_text("hi")

    async def test_server_error_is_not_quota_error(self, mock_http):
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(500, text="oops")))

        with pytest.raises(LanguageModelError) as exc_info:
            await client.generate_text("hi")
        assert not isinstance(exc_info.value, QuotaExceededError)

    async def test_string_error_body_is_model_error(self, mock_http):
        body = {"error": "API key not valid"}
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(400, json=body)))

        with pytest.raises(LanguageModelError) as exc_info:
            await client.generate_text("hi")
        assert not isinstance(exc_info.value, QuotaExceededError)

    async def test_string_quota_error_body_is_quota_error(self, mock_http):
        body = {"error": "RESOURCE_EXHAUSTED: try tomorrow"}
        client = GeminiClient("k", client=mock_http(lambda r: httpx.Response(400, json=body)))

        with pytest.raises(QuotaExceededError):
            await client.generate_text("hi")

    async def test_network_error(self, mock_http):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(LanguageModelError):
            await GeminiClient("k", client=mock_http(handler)).generate_text("hi")


class TestGenerateJson:
    async def test_parses_object(self, mock_http):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return _reply('{"message": "Peace", "reference": "John 14:27"}')

        schema = {"type": "OBJECT", "properties": {"message": {"type": "STRING"}}}
        result = await GeminiClient("k", client=mock_http(handler)).generate_json("go", schema)

        assert result == {"message": "Peace", "reference": "John 14:27"}
        config = seen[0]["generationConfig"]
        assert config["responseMimeType"] == "application/json"
        assert config["responseSchema"] == schema

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]"])
    async def test_unusable_output_raises(self, mock_http, text):
        client = GeminiClient("k", client=mock_http(lambda r: _reply(text)))

        with pytest.raises(LanguageModelError):
            await client.generate_json("go", {})
