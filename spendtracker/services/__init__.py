"""Services package."""

from spendtracker.services.storage import (
    AuditStorageInterface,
    CollectionRepository,
    CorruptDataError,
    InMemoryAuditStorage,
    InMemoryRepository,
    JsonFileRepository,
    JsonLinesAuditStorage,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "CollectionRepository",
    "CorruptDataError",
    "InMemoryAuditStorage",
    "InMemoryRepository",
    "JsonFileRepository",
    "JsonLinesAuditStorage",
    "StorageConnectionError",
    "StorageError",
]
