"""
Data Models Package

This package contains all Pydantic models used by SpendTracker.
Everything the repositories persist conforms to these schemas.
"""

from spendtracker.models.ledger import (
    Account,
    AccountBackup,
    AccountType,
    CatchUpPolicy,
    CategoryType,
    CustomCategory,
    Frequency,
    InsightType,
    RecurringPayment,
    ReportGrouping,
    ReportItem,
    ReportQuery,
    ReportResult,
    SpendingInsight,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from spendtracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountBackup",
    "AccountType",
    "CatchUpPolicy",
    "CategoryType",
    "CustomCategory",
    "Frequency",
    "RecurringPayment",
    "Transaction",
    "TransactionType",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Report models
    "InsightType",
    "ReportGrouping",
    "ReportItem",
    "ReportQuery",
    "ReportResult",
    "SpendingInsight",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
