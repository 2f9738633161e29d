"""Async client for the parish spreadsheet web app (Google Apps Script).

The web app exposes one sheet per record collection. Reads are ``GET
<url>?sheet=<name>`` returning a JSON array of rows; writes are form-encoded
POSTs whose ``payload`` field carries the row as JSON. Failures never raise:
reads degrade to an empty list and writes report through ``SyncResult``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .calendar.models import SyncResult
from .core.datetime_utils import now_local
from .core.http_client import get_shared_client, record_client_error, record_client_success

logger = logging.getLogger(__name__)

HEALTH_CHECK_SHEET = "health_check"
DEFAULT_SYNC_TAIL = 50


def sanitize_url(url: Any) -> str:
    """Trim whitespace and a trailing slash; non-strings become ''."""
    if not url or not isinstance(url, str):
        return ""
    sanitized = url.strip()
    if sanitized.endswith("/"):
        sanitized = sanitized[:-1]
    return sanitized


def is_valid_script_url(url: str) -> bool:
    return bool(url) and "/exec" in url


def _timestamp() -> str:
    return now_local().strftime("%H:%M:%S")


class SheetsClient:
    """Reads and writes parish collections through the spreadsheet web app."""

    def __init__(
        self,
        url: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        sync_tail_limit: int = DEFAULT_SYNC_TAIL,
    ) -> None:
        """Create a SheetsClient.

        Args:
            url: Deployed web app URL (must contain ``/exec``)
            client: Optional HTTP client; the shared "sheets" client is used otherwise
            sync_tail_limit: How many of the newest items a full-table push sends
        """
        self.url = sanitize_url(url)
        self.sync_tail_limit = sync_tail_limit
        self._client = client
        self._client_id = "sheets"

    @property
    def configured(self) -> bool:
        return is_valid_script_url(self.url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(self._client_id)

    async def test_connection(self) -> SyncResult:
        """Check that the web app is deployed and answering."""
        timestamp = _timestamp()
        if not self.configured:
            return SyncResult(success=False, message="URL must end in /exec", timestamp=timestamp)

        try:
            client = await self._get_client()
            response = await client.get(self.url, params={"sheet": HEALTH_CHECK_SHEET})
        except httpx.HTTPError as e:
            logger.warning("Sheets health check failed: %s", e)
            await record_client_error(self._client_id)
            return SyncResult(
                success=False,
                message="Network error. Check script deployment and access (Anyone).",
                timestamp=timestamp,
            )

        if response.is_success:
            await record_client_success(self._client_id)
            return SyncResult(
                success=True, message="Connection Verified! Script is active.", timestamp=timestamp
            )
        return SyncResult(
            success=False, message=f"Server error: {response.status_code}", timestamp=timestamp
        )

    async def fetch_sheet_data(self, sheet: str) -> list[dict[str, Any]]:
        """Fetch every row of ``sheet``.

        Returns:
            List of row mappings; empty when the URL is invalid, the request
            fails, the script reports an error or the payload is not a list.
        """
        if not self.configured:
            return []

        try:
            client = await self._get_client()
            response = await client.get(self.url, params={"sheet": sheet})
        except httpx.HTTPError as e:
            logger.error("Fetch error [%s]: %s", sheet, e)
            await record_client_error(self._client_id)
            return []

        if not response.is_success:
            logger.warning("Fetch failed for %s: status %d", sheet, response.status_code)
            return []

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Fetch error [%s]: invalid JSON: %s", sheet, e)
            return []

        if isinstance(data, dict) and data.get("error"):
            logger.error("Script error for %s: %s", sheet, data["error"])
            return []
        if not isinstance(data, list):
            return []

        await record_client_success(self._client_id)
        return [row for row in data if isinstance(row, dict)]

    async def sync_entry(self, sheet: str, entry: dict[str, Any]) -> SyncResult:
        """Push one record to ``sheet``.

        The row is sent as JSON in a form field named ``payload`` together with
        the sheet name and a ``sync_timestamp``.
        """
        timestamp = _timestamp()
        if not self.configured:
            return SyncResult(success=False, message="Invalid Script URL", timestamp=timestamp)

        payload = {**entry, "sheet": sheet, "sync_timestamp": now_local().isoformat()}
        logger.debug("Syncing to %s: %s", sheet, entry.get("id"))

        try:
            client = await self._get_client()
            response = await client.post(
                self.url,
                params={"sheet": sheet},
                data={"payload": json.dumps(payload, default=str)},
                headers={"Cache-Control": "no-cache"},
            )
        except httpx.HTTPError as e:
            logger.error("Sync dispatch failed [%s]: %s", sheet, e)
            await record_client_error(self._client_id)
            return SyncResult(success=False, message=f"Network error: {e}", timestamp=timestamp)

        if response.status_code >= 400:
            logger.warning("Sync to %s returned status %d", sheet, response.status_code)
            return SyncResult(
                success=False, message=f"Server error: {response.status_code}", timestamp=timestamp
            )

        await record_client_success(self._client_id)
        return SyncResult(
            success=True, message=f"Sync dispatched to '{sheet}'.", timestamp=timestamp
        )

    async def sync_full_table(self, sheet: str, items: list[dict[str, Any]]) -> list[SyncResult]:
        """Push the newest items of a collection one at a time."""
        results = []
        for item in items[-self.sync_tail_limit :]:
            results.append(await self.sync_entry(sheet, item))
        return results
