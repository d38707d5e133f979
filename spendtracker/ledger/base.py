"""
Shared machinery for the persisted stores.

Each store keeps one whole collection in memory, guards it with a
re-entrant lock and persists it through a CollectionRepository after
every change.
"""

from contextlib import contextmanager
from datetime import datetime
from threading import RLock
from typing import Callable, Generic, Iterator, Optional

from spendtracker.audit import AuditLogger, get_logger
from spendtracker.ledger.errors import PersistenceError
from spendtracker.models.audit import AuditEvent, AuditEventBuilder
from spendtracker.services.storage import CollectionRepository, StorageError
from spendtracker.services.storage.interface import T


Clock = Callable[[], datetime]


class PersistedStore(Generic[T]):
    """Base for stores that own one persisted collection."""

    def __init__(
        self,
        repository: CollectionRepository[T],
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._items: list[T] = []
        self._lock = RLock()
        self._logger = get_logger(type(self).__module__)

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def repository(self) -> CollectionRepository[T]:
        return self._repository

    def _load_items(self) -> list[T]:
        with self._lock:
            self._items = self._repository.load()
            return [item.model_copy(deep=True) for item in self._items]

    @contextmanager
    def _mutation(self) -> Iterator[list[AuditEvent]]:
        """
        Run one all-or-nothing change.

        The collection is snapshotted first. If the body raises, or the
        save raises StorageError, the snapshot is restored. Audit events
        the body appends to the yielded list are logged only after a
        successful save.
        """
        with self._lock:
            snapshot = [item.model_copy(deep=True) for item in self._items]
            events: list[AuditEvent] = []
            try:
                yield events
                self._repository.save(self._items)
            except StorageError as e:
                self._items = snapshot
                self._logger.error(
                    "persist_failed",
                    collection=self._repository.collection,
                    error=str(e),
                )
                self._audit(AuditEventBuilder.persistence_failed(
                    collection=self._repository.collection,
                    error_message=str(e),
                ))
                raise PersistenceError(self._repository.collection, str(e)) from e
            except Exception:
                self._items = snapshot
                raise

        for event in events:
            self._audit(event)

    def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)
