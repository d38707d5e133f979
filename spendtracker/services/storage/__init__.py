"""
Storage Services Package

Provides the abstract repository interface and concrete implementations.
Local JSON files are the default backend; in-memory and Google Sheets
backends implement the same interface and are swappable.
"""

from spendtracker.services.storage.interface import (
    AuditStorageInterface,
    CollectionRepository,
    CorruptDataError,
    StorageConnectionError,
    StorageError,
)
from spendtracker.services.storage.json_file import (
    JsonFileRepository,
    JsonLinesAuditStorage,
)
from spendtracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionRepository",
    # Exceptions
    "CorruptDataError",
    "StorageConnectionError",
    "StorageError",
    # Local implementations
    "InMemoryAuditStorage",
    "InMemoryRepository",
    "JsonFileRepository",
    "JsonLinesAuditStorage",
]
