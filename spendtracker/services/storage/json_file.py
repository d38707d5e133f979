"""
Local JSON File Storage

DESIGN DECISION: The default backend keeps each collection in its own
JSON file, so accounts, recurring payments and categories load and
save independently.

Writes are atomic: the collection is written to a temporary file in
the same directory and moved over the old file with os.replace, so a
crash mid-write leaves the previous version intact instead of a
truncated file. Transient OS errors are retried before surfacing.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Sequence
from uuid import UUID

from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendtracker.models.audit import AuditEvent
from spendtracker.services.storage.interface import (
    AuditStorageInterface,
    CollectionRepository,
    CorruptDataError,
    StorageError,
    T,
)


class JsonFileRepository(CollectionRepository[T]):
    """
    Whole-collection repository backed by one JSON array file.

    A missing file is an empty collection.
    """

    def __init__(self, path: Path, model: type[T], collection: str):
        super().__init__(model, collection)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[T]:
        if not self._path.exists():
            return []
        try:
            raw = self._read()
        except OSError as e:
            raise StorageError(f"Failed to read {self._collection}: {e}") from e

        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"{self._path} is not valid JSON: {e}") from e
        if not isinstance(rows, list):
            raise CorruptDataError(f"{self._path} must contain a JSON array")

        return self._deserialize(rows)

    def save(self, items: Sequence[T]) -> None:
        payload = json.dumps(self._serialize(items), indent=2)
        try:
            self._write(payload)
        except OSError as e:
            raise StorageError(f"Failed to save {self._collection}: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _read(self) -> str:
        return self._path.read_text(encoding="utf-8")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    Append-only audit log, one JSON object per line.

    Audit events are appended, never rewritten.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    def append_event(self, event: AuditEvent) -> bool:
        try:
            self._append(event.model_dump_json())
            return True
        except OSError:
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _read_all(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StorageError(f"Failed to read audit log: {e}") from e

        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate_json(line))
            except ValidationError:
                continue  # Skip malformed lines
        return events

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._read_all() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._read_all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._read_all(), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
