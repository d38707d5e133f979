"""
Audit Models for SpendTracker

Every mutation of the ledger is recorded as an audit event.
This provides:
1. Traceability of balance changes back to the action that caused them
2. Debugging information when persistence fails
3. A history the user can review

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNTS_MERGED = "accounts_merged"
    LEDGER_RESTORED = "ledger_restored"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_MOVED = "transaction_moved"
    TRANSFER_CREATED = "transfer_created"

    # Recurring payments
    RECURRING_PAYMENT_CREATED = "recurring_payment_created"
    RECURRING_PAYMENT_UPDATED = "recurring_payment_updated"
    RECURRING_PAYMENT_DELETED = "recurring_payment_deleted"
    RECURRING_PAYMENT_TOGGLED = "recurring_payment_toggled"
    RECURRING_PAYMENT_PROCESSED = "recurring_payment_processed"

    # Category catalog
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    INTEGRITY_ISSUE = "integrity_issue"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events caused by one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a spreadsheet row.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(account_id, name, "debit")
        event = AuditEventBuilder.transfer_created(src_id, dst_id, amount)
    """

    @staticmethod
    def account_created(
        account_id: UUID,
        name: str,
        account_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created: {name}",
            details={"name": name, "account_type": account_type},
        )

    @staticmethod
    def account_updated(
        account_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account updated: {name}",
            details={"name": name},
        )

    @staticmethod
    def account_deleted(
        account_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account deleted: {name}",
            details={"name": name},
        )

    @staticmethod
    def accounts_merged(
        source_id: UUID,
        target_id: UUID,
        moved_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_MERGED,
            entity_type="account",
            entity_id=target_id,
            correlation_id=correlation_id,
            description=f"Merged account {source_id} into {target_id}",
            details={
                "source_account_id": str(source_id),
                "moved_transactions": moved_count,
            },
        )

    @staticmethod
    def ledger_restored(
        account_count: int,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESTORED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger replaced from {source} ({account_count} accounts)",
            details={"account_count": account_count, "source": source},
        )

    @staticmethod
    def transaction_added(
        transaction_id: UUID,
        account_id: UUID,
        transaction_type: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "account_id": str(account_id),
                "type": transaction_type,
                "amount": str(amount),
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction updated",
            details={"account_id": str(account_id)},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        account_id: UUID,
        linked_transaction_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        details = {"account_id": str(account_id)}
        if linked_transaction_id:
            details["linked_transaction_id"] = str(linked_transaction_id)
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=(
                "Transfer pair deleted" if linked_transaction_id
                else "Transaction deleted"
            ),
            details=details,
        )

    @staticmethod
    def transaction_moved(
        transaction_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_MOVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction moved between accounts",
            details={
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
            },
        )

    @staticmethod
    def transfer_created(
        source_transaction_id: UUID,
        target_transaction_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_CREATED,
            entity_type="transaction",
            entity_id=source_transaction_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} created",
            details={
                "target_transaction_id": str(target_transaction_id),
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
                "amount": str(amount),
            },
        )

    @staticmethod
    def recurring_payment_changed(
        event_type: AuditEventType,
        payment_id: UUID,
        name: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type="recurring_payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Recurring payment {verb}: {name}",
            details=details or {},
        )

    @staticmethod
    def recurring_payment_processed(
        payment_id: UUID,
        transaction_id: UUID,
        scheduled_for: datetime,
        next_due_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_PAYMENT_PROCESSED,
            entity_type="recurring_payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Recurring payment due {scheduled_for.date().isoformat()} processed",
            details={
                "transaction_id": str(transaction_id),
                "scheduled_for": scheduled_for.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
        )

    @staticmethod
    def category_changed(
        event_type: AuditEventType,
        category_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category {event_type.value.rsplit('_', 1)[-1]}: {name}",
            details={"name": name},
        )

    @staticmethod
    def persistence_failed(
        collection: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            correlation_id=correlation_id,
            description=f"Failed to persist {collection}; in-memory state rolled back",
            error_message=error_message,
            details={"collection": collection},
        )

    @staticmethod
    def integrity_issue(
        entity_type: str,
        entity_id: UUID,
        issue_type: str,
        message: str,
        severity: AuditSeverity = AuditSeverity.WARNING,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTEGRITY_ISSUE,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
            description=message[:500],
            details={"issue_type": issue_type},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
