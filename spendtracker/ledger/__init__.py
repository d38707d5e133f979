"""Ledger stores: accounts and transactions, recurring payments, categories."""

from spendtracker.ledger.categories import CategoryCatalog, default_categories
from spendtracker.ledger.errors import (
    DuplicateTransactionError,
    InvariantViolationError,
    LedgerError,
    NotFoundError,
    PersistenceError,
)
from spendtracker.ledger.recurring import (
    DuePaymentPlan,
    PlannedOccurrence,
    RecurringPaymentStore,
)
from spendtracker.ledger.store import LedgerStore

__all__ = [
    "CategoryCatalog",
    "default_categories",
    "DuplicateTransactionError",
    "InvariantViolationError",
    "LedgerError",
    "NotFoundError",
    "PersistenceError",
    "DuePaymentPlan",
    "PlannedOccurrence",
    "RecurringPaymentStore",
    "LedgerStore",
]
