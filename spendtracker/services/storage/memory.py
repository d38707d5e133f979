"""
In-Memory Storage

Used by tests and by the "memory" backend. Items are kept in their
serialized JSON form so a load() never hands back objects shared
with the caller: mutating a loaded account cannot change what is
"stored" until save() is called again.
"""

import json
from typing import Sequence
from uuid import UUID

from spendtracker.models.audit import AuditEvent
from spendtracker.services.storage.interface import (
    AuditStorageInterface,
    CollectionRepository,
    T,
)


class InMemoryRepository(CollectionRepository[T]):
    """Whole-collection repository held in process memory."""

    def __init__(self, model: type[T], collection: str, items: Sequence[T] = ()):
        super().__init__(model, collection)
        self._payload = json.dumps(self._serialize(items))
        self.save_count = 0

    def load(self) -> list[T]:
        return self._deserialize(json.loads(self._payload))

    def save(self, items: Sequence[T]) -> None:
        self._payload = json.dumps(self._serialize(items))
        self.save_count += 1


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
