"""
Ledger Exceptions

Every failure a store operation can report. None of them is fatal:
the caller decides whether to retry, inform the user or abort.
Invariant violations are always raised before any state changes.
"""

from uuid import UUID


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class NotFoundError(LedgerError):
    """Referenced account, transaction, recurring payment or category does not exist."""

    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.replace('_', ' ').capitalize()} not found: {entity_id}")


class InvariantViolationError(LedgerError):
    """Operation would break a ledger invariant and was rejected."""
    pass


class DuplicateTransactionError(InvariantViolationError):
    """A transaction with the same ID is already recorded."""

    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction already recorded: {transaction_id}")


class PersistenceError(LedgerError):
    """
    Saving a collection failed.

    The store has already restored its in-memory state to what it was
    before the operation, so memory and storage agree again.
    """

    def __init__(self, collection: str, message: str):
        self.collection = collection
        super().__init__(f"Failed to persist {collection}: {message}")
