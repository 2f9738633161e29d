"""Record stores for parish_calendar collections.

Records are plain camelCase dicts (``ParishRecord.to_record()`` output) grouped
into named collections. ``InMemoryStore`` backs tests and one-off CLI runs;
``JsonFileStore`` keeps everything in one JSON document with atomic writes.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..exceptions import StoreError

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "events",
    "groups",
    "contacts",
    "subscribers",
    "feedback",
    "requests",
    "knowledge",
    "mission",
    "inspiration",
)

Record = dict[str, Any]


class RecordStore(ABC):
    """Key-value persistence of record collections, upserted by ``id``."""

    @abstractmethod
    def get(self, collection: str) -> list[Record]:
        """Return a copy of every record in ``collection`` (empty when unknown)."""

    @abstractmethod
    def put(self, collection: str, record: Record) -> None:
        """Insert ``record`` or replace the record with the same ``id``."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Remove the record with ``record_id``; True when something was removed."""

    @abstractmethod
    def replace(self, collection: str, records: list[Record]) -> None:
        """Replace the whole collection."""


def _upsert(records: list[Record], record: Record) -> list[Record]:
    record_id = record.get("id")
    if record_id is None:
        return [*records, record]
    updated = [record if existing.get("id") == record_id else existing for existing in records]
    if not any(existing.get("id") == record_id for existing in records):
        updated.append(record)
    return updated


class InMemoryStore(RecordStore):
    """Dict-backed store; nothing survives the process."""

    def __init__(self, initial: dict[str, list[Record]] | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, list[Record]] = copy.deepcopy(initial) if initial else {}

    def get(self, collection: str) -> list[Record]:
        with self._lock:
            return copy.deepcopy(self._data.get(collection, []))

    def put(self, collection: str, record: Record) -> None:
        with self._lock:
            self._data[collection] = _upsert(self._data.get(collection, []), dict(record))

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            records = self._data.get(collection, [])
            kept = [r for r in records if r.get("id") != record_id]
            self._data[collection] = kept
            return len(kept) != len(records)

    def replace(self, collection: str, records: list[Record]) -> None:
        with self._lock:
            self._data[collection] = copy.deepcopy(records)


class JsonFileStore(InMemoryStore):
    """JSON-file store mapping collection name -> list of records.

    The whole document is rewritten on every change: written to a temporary
    file in the same directory and then moved into place with ``os.replace``.
    A missing or unreadable file loads as an empty store.
    """

    def __init__(self, path: str | Path) -> None:
        """Create a JsonFileStore.

        Args:
            path: Location of the JSON document; parent directories are created.
        """
        super().__init__()
        self._path = Path(path)

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for record store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load the document from disk, replacing the in-memory state."""
        with self._lock:
            if not self._path.exists():
                logger.debug("Record store file not found; starting empty: %s", self._path)
                self._data = {}
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
                if not isinstance(data, dict):
                    raise ValueError("record store JSON root must be an object")  # noqa: TRY004
            except (OSError, ValueError) as exc:
                logger.warning("Failed to read record store %s: %s", self._path, exc)
                self._data = {}
                return

            self._data = {
                str(name): [r for r in records if isinstance(r, dict)]
                for name, records in data.items()
                if isinstance(records, list)
            }
            logger.debug(
                "Loaded record store %s (%d collections)", self._path, len(self._data)
            )

    def _persist(self) -> None:
        """Write the in-memory document to disk atomically. Called with lock held."""
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(self._data, tf, ensure_ascii=False, indent=2)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to persist record store to %s: %s", self._path, exc)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise StoreError(f"Could not write record store {self._path}: {exc}") from exc

    def _mutate(self, collection: str, records: list[Record]) -> None:
        previous = self._data.get(collection)
        self._data[collection] = records
        try:
            self._persist()
        except StoreError:
            # keep memory consistent with disk
            if previous is None:
                self._data.pop(collection, None)
            else:
                self._data[collection] = previous
            raise

    def put(self, collection: str, record: Record) -> None:
        with self._lock:
            self._mutate(collection, _upsert(self._data.get(collection, []), dict(record)))

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            records = self._data.get(collection, [])
            kept = [r for r in records if r.get("id") != record_id]
            if len(kept) == len(records):
                return False
            self._mutate(collection, kept)
            return True

    def replace(self, collection: str, records: list[Record]) -> None:
        with self._lock:
            self._mutate(collection, copy.deepcopy(records))
            logger.info("Replaced %s with %d records", collection, len(records))
