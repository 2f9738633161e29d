"""Async client for the Gemini ``generateContent`` REST endpoint.

Used for the chat assistant, the daily inspiration and mission refinement.
Every failure raises ``LanguageModelError``; quota exhaustion (HTTP 429 or a
``RESOURCE_EXHAUSTED`` status) raises ``QuotaExceededError`` so callers can
back off for the day.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .core.http_client import get_shared_client, record_client_error, record_client_success
from .exceptions import LanguageModelError, QuotaExceededError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-3-flash-preview"
QUOTA_STATUS = "RESOURCE_EXHAUSTED"


def _extract_text(body: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))


def _is_quota_error(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        return QUOTA_STATUS in response.text
    if isinstance(error, dict):
        return error.get("status") == QUOTA_STATUS
    return QUOTA_STATUS in str(error)


class GeminiClient:
    """Thin wrapper over generateContent for text and JSON output."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = GEMINI_API_BASE,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._client_id = "gemini"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(self._client_id)

    async def _generate(self, body: dict[str, Any]) -> str:
        if not self.api_key:
            raise LanguageModelError("No Gemini API key configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            client = await self._get_client()
            response = await client.post(
                url, json=body, headers={"x-goog-api-key": self.api_key}
            )
        except httpx.HTTPError as e:
            await record_client_error(self._client_id)
            raise LanguageModelError(f"Gemini request failed: {e}") from e

        if _is_quota_error(response):
            logger.warning("Gemini API quota exceeded")
            raise QuotaExceededError(f"Gemini quota exceeded (status {response.status_code})")
        if not response.is_success:
            await record_client_error(self._client_id)
            raise LanguageModelError(f"Gemini returned status {response.status_code}")

        await record_client_success(self._client_id)
        try:
            return _extract_text(response.json())
        except ValueError as e:
            raise LanguageModelError(f"Gemini returned invalid JSON: {e}") from e

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Generate a plain-text reply to ``prompt``.

        Args:
            prompt: User message
            system_instruction: Optional persona/context prompt
            temperature: Optional sampling temperature

        Returns:
            Reply text (may be empty when the model produced nothing)

        Raises:
            LanguageModelError: On any request failure
        """
        body: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if temperature is not None:
            body["generationConfig"] = {"temperature": temperature}
        return await self._generate(body)

    async def generate_json(self, prompt: str, response_schema: dict[str, Any]) -> dict[str, Any]:
        """Generate a JSON object matching ``response_schema``.

        Raises:
            LanguageModelError: On request failure, empty output or undecodable JSON
        """
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }
        text = await self._generate(body)
        if not text:
            raise LanguageModelError("Empty response from Gemini")
        try:
            parsed = json.loads(text)
        except ValueError as e:
            raise LanguageModelError(f"Gemini output is not JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise LanguageModelError("Gemini output is not a JSON object")
        return parsed
