"""
Ledger Store

The sole mutator of the account collection. Every operation:
1. Checks its preconditions before touching state
2. Applies the whole change (both legs of a transfer, every moved
   transaction of a merge) to the in-memory accounts
3. Recomputes the affected balances
4. Persists the entire collection once

DESIGN DECISION: Mutations are all-or-nothing. The accounts are
snapshotted before each change; if the change fails or the save
raises StorageError, the snapshot is restored, so in-memory state
never diverges from what was last persisted.

All access goes through one re-entrant lock: multi-step updates are
never observed half-applied by a concurrent reader.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID, uuid4

from spendtracker.audit import AuditLogger
from spendtracker.ledger.base import Clock, PersistedStore
from spendtracker.ledger.errors import (
    DuplicateTransactionError,
    InvariantViolationError,
    NotFoundError,
)
from spendtracker.models.audit import AuditEventBuilder
from spendtracker.models.ledger import (
    ZERO,
    TRANSFER_CATEGORY,
    Account,
    AccountBackup,
    AccountType,
    Transaction,
    TransactionType,
)
from spendtracker.services.storage import CollectionRepository
from spendtracker.validation import LedgerValidator


# Fields of a transfer leg that may be edited in place
TRANSFER_EDITABLE_FIELDS = ("payee", "notes", "category", "category_name")
TRANSFER_SHARED_FIELDS = ("notes", "category", "category_name")


class LedgerStore(PersistedStore[Account]):
    """
    Owns all accounts and their transactions.

    Reads return copies; the only way to change the ledger is through
    the mutating methods below.
    """

    def __init__(
        self,
        repository: CollectionRepository[Account],
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(repository, audit_logger, clock)

    def load(self) -> list[Account]:
        """Replace in-memory state with what the repository holds."""
        accounts = self._load_items()
        self._logger.info(
            "ledger_loaded",
            accounts=len(accounts),
            transactions=sum(len(a.transactions) for a in accounts),
        )
        return accounts

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _find_account(self, account_id: UUID) -> Account:
        for account in self._items:
            if account.id == account_id:
                return account
        raise NotFoundError("account", account_id)

    def _find_transaction_owner(self, transaction_id: UUID) -> Optional[Account]:
        for account in self._items:
            if account.get_transaction(transaction_id) is not None:
                return account
        return None

    def _contains_transaction(self, transaction_id: UUID) -> bool:
        return self._find_transaction_owner(transaction_id) is not None

    @staticmethod
    def _remove_transaction(account: Account, transaction_id: UUID) -> None:
        account.transactions = [t for t in account.transactions if t.id != transaction_id]
        account.recalculate_balance()

    # =========================================================================
    # Account management
    # =========================================================================

    @property
    def accounts(self) -> list[Account]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._items]

    def get_account(self, account_id: UUID) -> Account:
        with self._lock:
            return self._find_account(account_id).model_copy(deep=True)

    def get_account_name(self, account_id: UUID) -> str:
        with self._lock:
            for account in self._items:
                if account.id == account_id:
                    return account.name
            return "Unknown Account"

    def add_account(self, account: Account, correlation_id: Optional[UUID] = None) -> Account:
        """
        Add a new, empty account.

        Raises:
            InvariantViolationError: If the ID is taken or the account
                already carries transactions
        """
        with self._mutation() as events:
            if any(a.id == account.id for a in self._items):
                raise InvariantViolationError(f"Account already exists: {account.id}")
            if account.transactions:
                raise InvariantViolationError(
                    "New accounts must start empty; record transactions with add_transaction"
                )
            stored = account.model_copy(deep=True)
            stored.recalculate_balance()
            self._items.append(stored)
            events.append(AuditEventBuilder.account_created(
                account_id=stored.id,
                name=stored.name,
                account_type=stored.account_type.value,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def update_account(self, account: Account, correlation_id: Optional[UUID] = None) -> Account:
        """
        Update an account's own fields (name, icon, color, type, starting balance).

        Transactions are kept as stored; the passed account's
        transaction list is ignored.
        """
        with self._mutation() as events:
            existing = self._find_account(account.id)
            existing.name = account.name
            existing.icon = account.icon
            existing.color = account.color
            existing.account_type = account.account_type
            existing.starting_balance = account.starting_balance
            existing.recalculate_balance()
            events.append(AuditEventBuilder.account_updated(
                account_id=existing.id,
                name=existing.name,
                correlation_id=correlation_id,
            ))
        return existing.model_copy(deep=True)

    def can_delete_account(self, account_id: UUID) -> bool:
        """Only accounts without transactions may be deleted."""
        with self._lock:
            return not self._find_account(account_id).transactions

    def delete_account(self, account_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        """
        Delete an empty account.

        Raises:
            NotFoundError: If the account does not exist
            InvariantViolationError: If the account still holds transactions
        """
        with self._mutation() as events:
            account = self._find_account(account_id)
            if account.transactions:
                raise InvariantViolationError(
                    f"Account '{account.name}' holds {len(account.transactions)} "
                    "transactions and cannot be deleted"
                )
            self._items = [a for a in self._items if a.id != account_id]
            events.append(AuditEventBuilder.account_deleted(
                account_id=account_id,
                name=account.name,
                correlation_id=correlation_id,
            ))

    # =========================================================================
    # Transaction management
    # =========================================================================

    def find_transaction(self, transaction_id: UUID) -> tuple[Transaction, UUID]:
        """Return (transaction, owning account ID)."""
        with self._lock:
            owner = self._find_transaction_owner(transaction_id)
            if owner is None:
                raise NotFoundError("transaction", transaction_id)
            return owner.get_transaction(transaction_id).model_copy(deep=True), owner.id

    def add_transaction(
        self,
        transaction: Transaction,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record an income or expense transaction in an account.

        Raises:
            NotFoundError: If the account does not exist
            InvariantViolationError: For transfers (use add_transfer)
            DuplicateTransactionError: If the ID is already recorded
        """
        if transaction.is_transfer:
            raise InvariantViolationError("Transfers must be created with add_transfer")

        with self._mutation() as events:
            account = self._find_account(account_id)
            if self._contains_transaction(transaction.id):
                raise DuplicateTransactionError(transaction.id)
            stored = transaction.model_copy(update={"account_id": account_id}, deep=True)
            account.transactions.append(stored)
            account.recalculate_balance()
            events.append(AuditEventBuilder.transaction_added(
                transaction_id=stored.id,
                account_id=account_id,
                transaction_type=stored.type.value,
                amount=stored.amount,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def update_transaction(
        self,
        updated: Transaction,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Replace a transaction in place.

        Transfer legs only accept edits to payee, notes and category
        fields; notes and categories are mirrored onto the linked leg.
        Changing a transfer's amount, date or accounts, or turning a
        transaction into or out of a transfer, is rejected: delete the
        transfer and create a new one instead.
        """
        with self._mutation() as events:
            account = self._find_account(account_id)
            existing = account.get_transaction(updated.id)
            if existing is None:
                raise NotFoundError("transaction", updated.id)

            if existing.is_transfer or updated.is_transfer:
                stored = self._apply_transfer_edit(existing, updated, account_id)
            else:
                stored = updated.model_copy(update={"account_id": account_id}, deep=True)
                account.transactions = [
                    stored if t.id == stored.id else t for t in account.transactions
                ]
                account.recalculate_balance()

            events.append(AuditEventBuilder.transaction_updated(
                transaction_id=stored.id,
                account_id=account_id,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def _apply_transfer_edit(
        self,
        existing: Transaction,
        updated: Transaction,
        account_id: UUID,
    ) -> Transaction:
        if not (existing.is_transfer and updated.is_transfer):
            raise InvariantViolationError("Cannot convert a transaction to or from a transfer")

        locked_fields = (
            "amount", "date", "type", "target_account_id",
            "is_transfer_source", "linked_transaction_id",
        )
        changed = [f for f in locked_fields if getattr(existing, f) != getattr(updated, f)]
        if changed or updated.account_id != account_id:
            raise InvariantViolationError(
                "Transfer amounts, dates and accounts cannot be edited; "
                "delete the transfer and create a new one"
            )

        for field in TRANSFER_EDITABLE_FIELDS:
            setattr(existing, field, getattr(updated, field))

        linked_owner = self._find_transaction_owner(existing.linked_transaction_id)
        if linked_owner is not None and linked_owner.id != account_id:
            linked = linked_owner.get_transaction(existing.linked_transaction_id)
            for field in TRANSFER_SHARED_FIELDS:
                setattr(linked, field, getattr(updated, field))
        return existing

    def delete_transaction(
        self,
        transaction_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a transaction.

        Deleting either leg of a transfer removes both legs, in one
        update and one save.
        """
        with self._mutation() as events:
            account = self._find_account(account_id)
            transaction = account.get_transaction(transaction_id)
            if transaction is None:
                raise NotFoundError("transaction", transaction_id)

            self._remove_transaction(account, transaction_id)

            linked_id = None
            if transaction.is_transfer and transaction.linked_transaction_id:
                linked_id = transaction.linked_transaction_id
                linked_owner = self._find_transaction_owner(linked_id)
                if linked_owner is not None and linked_owner.id != account_id:
                    self._remove_transaction(linked_owner, linked_id)
                else:
                    self._logger.warning(
                        "transfer_leg_missing",
                        transaction_id=str(transaction_id),
                        linked_transaction_id=str(linked_id),
                    )

            events.append(AuditEventBuilder.transaction_deleted(
                transaction_id=transaction_id,
                account_id=account_id,
                linked_transaction_id=linked_id,
                correlation_id=correlation_id,
            ))

    def move_transaction(
        self,
        transaction_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Move an income or expense transaction to another account.

        Raises:
            InvariantViolationError: For transfer legs, or when both
                accounts are the same
        """
        if from_account_id == to_account_id:
            raise InvariantViolationError("Source and target accounts are the same")

        with self._mutation() as events:
            source = self._find_account(from_account_id)
            target = self._find_account(to_account_id)
            transaction = source.get_transaction(transaction_id)
            if transaction is None:
                raise NotFoundError("transaction", transaction_id)
            if transaction.is_transfer:
                raise InvariantViolationError("Transfer transactions cannot be moved")

            moved = self._move(transaction, source, target)
            events.append(AuditEventBuilder.transaction_moved(
                transaction_id=transaction_id,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                correlation_id=correlation_id,
            ))
        return moved.model_copy(deep=True)

    def _move(self, transaction: Transaction, source: Account, target: Account) -> Transaction:
        self._remove_transaction(source, transaction.id)
        moved = transaction.model_copy(update={"account_id": target.id})
        target.transactions.append(moved)
        target.recalculate_balance()
        return moved

    # =========================================================================
    # Transfers
    # =========================================================================

    def add_transfer(
        self,
        amount: Decimal,
        from_account_id: UUID,
        to_account_id: UUID,
        date: Optional[datetime] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, Transaction]:
        """
        Move money between two accounts.

        This is the only way transfer records come into existence.
        Both legs are created, cross-linked and recorded together.

        Returns:
            (source_leg, target_leg)
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvariantViolationError("Transfer amount must be positive")
        if from_account_id == to_account_id:
            raise InvariantViolationError("Cannot transfer to the same account")

        with self._mutation() as events:
            source = self._find_account(from_account_id)
            target = self._find_account(to_account_id)
            when = date or self._clock()
            source_id, target_id = uuid4(), uuid4()

            source_leg = Transaction(
                id=source_id,
                amount=amount,
                category=TRANSFER_CATEGORY,
                account_id=from_account_id,
                date=when,
                payee=f"Transfer to {target.name}",
                type=TransactionType.TRANSFER,
                notes=notes,
                target_account_id=to_account_id,
                is_transfer_source=True,
                linked_transaction_id=target_id,
            )
            target_leg = Transaction(
                id=target_id,
                amount=amount,
                category=TRANSFER_CATEGORY,
                account_id=to_account_id,
                date=when,
                payee=f"Transfer from {source.name}",
                type=TransactionType.TRANSFER,
                notes=notes,
                target_account_id=from_account_id,
                is_transfer_source=False,
                linked_transaction_id=source_id,
            )

            source.transactions.append(source_leg)
            target.transactions.append(target_leg)
            source.recalculate_balance()
            target.recalculate_balance()

            events.append(AuditEventBuilder.transfer_created(
                source_transaction_id=source_id,
                target_transaction_id=target_id,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount=amount,
                correlation_id=correlation_id,
            ))
        return source_leg.model_copy(deep=True), target_leg.model_copy(deep=True)

    # =========================================================================
    # Recurring payment handoff
    # =========================================================================

    def record_recurring_transactions(
        self,
        transactions: Iterable[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Record a batch of stamped recurring transactions with one save.

        Transactions whose ID is already recorded are skipped, so
        replaying a batch after a crash does not duplicate anything.

        Returns:
            The transactions that were newly recorded
        """
        with self._lock:
            pending = [t for t in transactions if not self._contains_transaction(t.id)]
            if not pending:
                return []

            with self._mutation() as events:
                recorded = []
                for transaction in pending:
                    if transaction.is_transfer:
                        raise InvariantViolationError("Recurring transactions cannot be transfers")
                    account = self._find_account(transaction.account_id)
                    if self._contains_transaction(transaction.id):
                        continue  # Duplicate within the batch itself
                    stored = transaction.model_copy(deep=True)
                    account.transactions.append(stored)
                    account.recalculate_balance()
                    recorded.append(stored)
                    events.append(AuditEventBuilder.transaction_added(
                        transaction_id=stored.id,
                        account_id=stored.account_id,
                        transaction_type=stored.type.value,
                        amount=stored.amount,
                        correlation_id=correlation_id,
                    ))
            return [t.model_copy(deep=True) for t in recorded]

    # =========================================================================
    # Merging
    # =========================================================================

    def can_merge_accounts(self, source_id: UUID, target_id: UUID) -> bool:
        with self._lock:
            try:
                self._check_merge(self._find_account(source_id), self._find_account(target_id))
            except InvariantViolationError:
                return False
            return True

    @staticmethod
    def _check_merge(source: Account, target: Account) -> None:
        if source.id == target.id:
            raise InvariantViolationError("Cannot merge an account into itself")
        if source.account_type != target.account_type:
            raise InvariantViolationError(
                f"Cannot merge a {source.account_type.value} account "
                f"into a {target.account_type.value} account"
            )
        if source.has_transfers:
            raise InvariantViolationError(
                f"Account '{source.name}' holds transfer transactions; "
                "delete them before merging"
            )

    def merge_accounts(
        self,
        source_id: UUID,
        target_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """
        Fold the source account into the target.

        Every transaction moves to the target, the source's starting
        balance is added to the target's, and the source is removed.
        Refused without any change when the types differ or the source
        holds transfer legs.
        """
        with self._mutation() as events:
            source = self._find_account(source_id)
            target = self._find_account(target_id)
            self._check_merge(source, target)

            moved_count = len(source.transactions)
            for transaction in list(source.transactions):
                self._move(transaction, source, target)

            target.starting_balance += source.starting_balance
            target.recalculate_balance()
            self._items = [a for a in self._items if a.id != source_id]

            events.append(AuditEventBuilder.accounts_merged(
                source_id=source_id,
                target_id=target_id,
                moved_count=moved_count,
                correlation_id=correlation_id,
            ))
        return target.model_copy(deep=True)

    # =========================================================================
    # Financial analytics
    # =========================================================================

    def total_balance(self) -> Decimal:
        with self._lock:
            return sum((a.current_balance for a in self._items), ZERO)

    def net_worth(self) -> Decimal:
        """Debit balances minus credit-card debt."""
        with self._lock:
            debit_total = sum(
                (a.current_balance for a in self._items if a.account_type == AccountType.DEBIT),
                ZERO,
            )
            return debit_total - self.total_debt()

    def total_assets(self) -> Decimal:
        with self._lock:
            return sum(
                (max(a.current_balance, ZERO) for a in self._items
                 if a.account_type == AccountType.DEBIT),
                ZERO,
            )

    def total_debt(self) -> Decimal:
        with self._lock:
            return sum((a.debt_amount for a in self._items), ZERO)

    def total_available_credit(self) -> Decimal:
        with self._lock:
            return sum((a.available_credit for a in self._items), ZERO)

    def has_debt(self) -> bool:
        return self.total_debt() > 0

    def has_assets(self) -> bool:
        return self.total_assets() > 0

    def financial_health_score(self) -> float:
        """
        Share of assets in assets + debt, as a percentage.

        50 when there is neither, 100 without debt, 0 with debt and
        no assets.
        """
        with self._lock:
            assets = self.total_assets()
            debt = self.total_debt()

        if assets == 0 and debt == 0:
            return 50.0
        if debt == 0:
            return 100.0
        if assets == 0:
            return 0.0
        return float(assets / (assets + debt) * 100)

    # =========================================================================
    # Account and transaction queries
    # =========================================================================

    def accounts_by_type(self, account_type: AccountType) -> list[Account]:
        return [a for a in self.accounts if a.account_type == account_type]

    def accounts_with_transactions(self) -> list[Account]:
        return [a for a in self.accounts if a.transactions]

    def all_transactions(self) -> list[Transaction]:
        with self._lock:
            return [t.model_copy(deep=True) for a in self._items for t in a.transactions]

    def transactions_by_type(self, transaction_type: TransactionType) -> list[Transaction]:
        return [t for t in self.all_transactions() if t.type == transaction_type]

    def transactions_in_range(self, start: datetime, end: datetime) -> list[Transaction]:
        """Transactions dated within [start, end]."""
        return [t for t in self.all_transactions() if start <= t.date <= end]

    def _account_transactions(
        self,
        account_id: UUID,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> list[Transaction]:
        transactions = self.get_account(account_id).transactions
        if start is not None:
            transactions = [t for t in transactions if t.date >= start]
        if end is not None:
            transactions = [t for t in transactions if t.date <= end]
        return transactions

    def total_income_for_account(
        self,
        account_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Decimal:
        return sum(
            (t.amount for t in self._account_transactions(account_id, start, end)
             if t.type == TransactionType.INCOME),
            ZERO,
        )

    def total_expenses_for_account(
        self,
        account_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Decimal:
        return sum(
            (t.amount for t in self._account_transactions(account_id, start, end)
             if t.type == TransactionType.EXPENSE),
            ZERO,
        )

    def net_change_for_account(
        self,
        account_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Decimal:
        return (
            self.total_income_for_account(account_id, start, end)
            - self.total_expenses_for_account(account_id, start, end)
        )

    def search_transactions(self, query: str) -> list[Transaction]:
        """Case-insensitive match on payee, notes, category or amount."""
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            t for t in self.all_transactions()
            if needle in t.payee.lower()
            or (t.notes is not None and needle in t.notes.lower())
            or needle in t.display_category.lower()
            or needle in str(t.amount)
        ]

    def recent_transactions(self, limit: int = 10) -> list[Transaction]:
        return sorted(self.all_transactions(), key=lambda t: t.date, reverse=True)[:limit]

    def largest_transactions(self, limit: int = 10) -> list[Transaction]:
        return sorted(self.all_transactions(), key=lambda t: t.amount, reverse=True)[:limit]

    @property
    def transaction_count(self) -> int:
        with self._lock:
            return sum(len(a.transactions) for a in self._items)

    # =========================================================================
    # Backup and restore
    # =========================================================================

    def create_backup(self) -> AccountBackup:
        return AccountBackup(accounts=self.accounts, backup_date=self._clock())

    def restore_backup(
        self,
        backup: AccountBackup,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Replace every account with the backup's contents.

        Raises:
            InvariantViolationError: If the backup fails the integrity check
        """
        self._replace_all(backup.accounts, "backup", correlation_id)

    def export_json(self) -> str:
        with self._lock:
            return json.dumps([a.model_dump(mode="json") for a in self._items], indent=2)

    def import_json(self, data: str, correlation_id: Optional[UUID] = None) -> None:
        """
        Replace every account with the JSON array in data.

        Raises:
            pydantic.ValidationError: If an account record is malformed
            ValueError: If data is not a JSON array
            InvariantViolationError: If the accounts fail the integrity check
        """
        rows = json.loads(data)
        if not isinstance(rows, list):
            raise ValueError("Imported data must be a JSON array of accounts")
        self._replace_all(
            [Account.model_validate(row) for row in rows],
            "import",
            correlation_id,
        )

    def _replace_all(
        self,
        accounts: list[Account],
        source: str,
        correlation_id: Optional[UUID],
    ) -> None:
        replacement = [a.model_copy(deep=True) for a in accounts]
        for account in replacement:
            account.recalculate_balance()

        result = LedgerValidator().validate(replacement)
        if result.has_errors:
            problems = "; ".join(i.message for i in result.issues if i.severity == "error")
            self._logger.warning("ledger_replace_rejected", source=source, errors=result.error_count)
            raise InvariantViolationError(f"Refusing to load {source} with integrity errors: {problems}")

        with self._mutation() as events:
            self._items = replacement
            events.append(AuditEventBuilder.ledger_restored(
                account_count=len(self._items),
                source=source,
                correlation_id=correlation_id,
            ))
