"""
Abstract Storage Interface

DESIGN DECISION: Each ledger collection (accounts, recurring payments,
categories) is persisted through a repository with a load()/save()
lifecycle. This allows us to:
1. Swap local JSON files for Google Sheets (or a database) later
2. Use in-memory storage for testing
3. Keep the stores decoupled from the storage implementation

Collections are always written whole. The stores never do incremental
writes, so a repository only needs to round-trip a full list.
"""

from abc import ABC, abstractmethod
from typing import Generic, Iterable, Sequence, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from spendtracker.models.audit import AuditEvent


T = TypeVar("T", bound=BaseModel)


class CollectionRepository(ABC, Generic[T]):
    """
    Abstract interface for a whole-collection repository.

    Any storage implementation must implement load() and save().
    Serialization helpers are shared so every backend stores the
    same JSON shape.
    """

    def __init__(self, model: type[T], collection: str):
        self._model = model
        self._collection = collection

    @property
    def collection(self) -> str:
        return self._collection

    @abstractmethod
    def load(self) -> list[T]:
        """
        Load the entire collection.

        Returns:
            Every stored item; an empty list if nothing was saved yet

        Raises:
            CorruptDataError: If stored data cannot be parsed
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def save(self, items: Sequence[T]) -> None:
        """
        Replace the stored collection with items.

        Raises:
            StorageError: If the write fails
        """
        pass

    def _serialize(self, items: Iterable[T]) -> list[dict]:
        return [item.model_dump(mode="json") for item in items]

    def _deserialize(self, rows: Iterable[dict]) -> list[T]:
        items = []
        for index, row in enumerate(rows):
            try:
                items.append(self._model.model_validate(row))
            except ValidationError as e:
                raise CorruptDataError(
                    f"Invalid {self._collection} record at position {index}: {e}"
                ) from e
        return items


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """All events for one user action, in chronological order."""
        pass

    @abstractmethod
    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """Stored data exists but does not match the expected schema."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
