"""
Shared fixtures.

Stores run against in-memory repositories and a fixed clock, so no
test touches the real filesystem (except through tmp_path) or the
wall clock.
"""

from datetime import datetime
from decimal import Decimal
from typing import Sequence

import pytest

from spendtracker.audit import AuditLogger
from spendtracker.ledger import CategoryCatalog, LedgerStore, RecurringPaymentStore
from spendtracker.models import (
    Account,
    AccountType,
    CustomCategory,
    RecurringPayment,
)
from spendtracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryRepository,
    StorageError,
)


NOW = datetime(2024, 3, 15, 9, 0)


def fixed_clock() -> datetime:
    return NOW


class FailingRepository(InMemoryRepository):
    """In-memory repository whose saves can be switched to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_saves = False

    def save(self, items: Sequence) -> None:
        if self.fail_saves:
            raise StorageError("disk full")
        super().save(items)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def accounts_repo():
    return FailingRepository(Account, "accounts")


@pytest.fixture
def recurring_repo():
    return FailingRepository(RecurringPayment, "recurring_payments")


@pytest.fixture
def categories_repo():
    return FailingRepository(CustomCategory, "categories")


@pytest.fixture
def ledger(accounts_repo, audit_logger):
    store = LedgerStore(accounts_repo, audit_logger, clock=fixed_clock)
    store.load()
    return store


@pytest.fixture
def recurring(recurring_repo, audit_logger):
    store = RecurringPaymentStore(recurring_repo, audit_logger, clock=fixed_clock)
    store.load()
    return store


@pytest.fixture
def catalog(categories_repo, audit_logger):
    store = CategoryCatalog(categories_repo, audit_logger)
    store.load()
    return store


@pytest.fixture
def checking(ledger):
    return ledger.add_account(Account.open("Checking", Decimal("1000.00")))


@pytest.fixture
def savings(ledger):
    return ledger.add_account(Account.open("Savings", Decimal("500.00")))


@pytest.fixture
def credit_card(ledger):
    """Credit card opened with 200.00 owed."""
    return ledger.add_account(
        Account.open("Visa", Decimal("200.00"), account_type=AccountType.CREDIT)
    )
