"""
Tests for the AuditLogger
"""

from uuid import uuid4

from spendtracker.audit import AuditLogger, create_correlation_id
from spendtracker.models import AuditEventBuilder
from spendtracker.services.storage import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    def append_event(self, event):
        raise RuntimeError("sheet unavailable")

    def get_events_by_correlation_id(self, correlation_id):
        return []

    def get_events_by_entity(self, entity_type, entity_id):
        return []

    def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Tests for audit event logging."""

    def test_logs_to_storage(self):
        storage = InMemoryAuditStorage()
        event = AuditEventBuilder.account_created(uuid4(), "Checking", "debit")

        assert AuditLogger(storage).log(event)
        assert storage.events == [event]

    def test_without_storage(self):
        event = AuditEventBuilder.account_deleted(uuid4(), "Old")
        assert AuditLogger().log(event)

    def test_storage_failure_does_not_raise(self):
        event = AuditEventBuilder.persistence_failed("accounts", "disk full")
        assert AuditLogger(BrokenAuditStorage()).log(event) is False

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()
