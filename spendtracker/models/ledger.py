"""
Core Data Models for SpendTracker

These models define the schemas for everything the ledger stores:
accounts, the transactions inside them, recurring payment templates
and the category catalog. They are designed to:
1. Enforce the per-record invariants at construction time
2. Be serializable for the repositories (model_dump(mode="json"))
3. Keep derived state (account balances) recomputable from stored facts

DESIGN DECISION: Money is Decimal, never float.
Balances are folds over transaction amounts and must compare exactly.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4, uuid5

from dateutil.relativedelta import relativedelta
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


ZERO = Decimal("0")

TRANSFER_CATEGORY = "Transfer"
DEFAULT_CATEGORY = "Other"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """
    Account types.

    Debit accounts hold assets. Credit accounts hold liabilities:
    a negative balance on a credit account is money owed.
    """
    DEBIT = "debit"
    CREDIT = "credit"

    @property
    def balance_multiplier(self) -> Decimal:
        """Sign applied to a user-entered starting balance."""
        return Decimal("1") if self is AccountType.DEBIT else Decimal("-1")


class TransactionType(str, Enum):
    """Kind of money movement."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class CategoryType(str, Enum):
    """Which transaction type a catalog category applies to."""
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """
    Recurrence frequency for recurring payments.

    DESIGN DECISION: Month, quarter and year steps use calendar
    arithmetic (relativedelta), not fixed day counts. "Monthly" from
    Jan 31 lands on the last day of February, not on March 2.
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def step(self) -> relativedelta:
        return _FREQUENCY_STEPS[self]

    def next_date(self, from_date: datetime) -> datetime:
        """Return the due date one period after from_date."""
        return from_date + self.step


_FREQUENCY_STEPS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.BIWEEKLY: relativedelta(weeks=2),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY: relativedelta(years=1),
}


class CatchUpPolicy(str, Enum):
    """
    How a due-payment sweep treats a payment overdue by several periods.

    LATEST_ONLY: one transaction per payment per sweep, dated "now".
    BACKFILL: one transaction per elapsed period, each dated at the
              due date it was scheduled for.
    """
    LATEST_ONLY = "latest_only"
    BACKFILL = "backfill"


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single recorded money movement.

    The amount is always positive; the sign of its effect on the owning
    account comes from the type (and, for transfers, from which leg
    this record is).

    CRITICAL: A transfer exists as exactly two records, one per account,
    each pointing at the other through linked_transaction_id.
    Only LedgerStore.add_transfer creates them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount; direction is implied by type"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        max_length=100,
        description="Built-in category name"
    )
    category_name: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Display category from the catalog, if the user picked one"
    )
    account_id: UUID = Field(
        ...,
        description="Owning account"
    )
    date: datetime
    payee: str = Field(
        default="",
        max_length=200,
    )
    type: TransactionType
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )

    # Transfer legs only
    target_account_id: Optional[UUID] = Field(
        default=None,
        description="The other account of a transfer"
    )
    is_transfer_source: Optional[bool] = Field(
        default=None,
        description="True on the leg money leaves from"
    )
    linked_transaction_id: Optional[UUID] = Field(
        default=None,
        description="ID of the other leg of a transfer"
    )

    # Set when stamped from a recurring payment template
    recurring_payment_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_transfer_fields(self) -> 'Transaction':
        """Transfer fields are required on transfers and forbidden elsewhere."""
        transfer_fields = (
            self.target_account_id,
            self.is_transfer_source,
            self.linked_transaction_id,
        )
        if self.type == TransactionType.TRANSFER:
            if any(value is None for value in transfer_fields):
                raise ValueError(
                    "Transfer transactions require target_account_id, "
                    "is_transfer_source and linked_transaction_id"
                )
            if self.target_account_id == self.account_id:
                raise ValueError("Transfer target must differ from the owning account")
        elif any(value is not None for value in transfer_fields):
            raise ValueError("Only transfer transactions may carry transfer fields")
        return self

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER

    @property
    def signed_amount(self) -> Decimal:
        """Contribution of this record to its owning account's balance."""
        if self.type == TransactionType.INCOME:
            return self.amount
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return -self.amount if self.is_transfer_source else self.amount

    @property
    def display_category(self) -> str:
        return self.category_name or self.category


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(BaseModel):
    """
    A named, balance-bearing container of transactions.

    INVARIANT: current_balance == starting_balance + sum of the signed
    contributions of all transactions. The stored current_balance is
    never trusted; it is recomputed on construction (including when
    loaded from storage) and after every mutation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    starting_balance: Decimal = Field(
        default=ZERO,
        decimal_places=2,
        description="Signed opening balance"
    )
    icon: str = Field(default="creditcard")
    color: str = Field(default="Blue")
    account_type: AccountType = AccountType.DEBIT
    current_balance: Decimal = Field(
        default=ZERO,
        description="Derived; recomputed from starting balance and transactions"
    )
    transactions: list[Transaction] = Field(default_factory=list)

    @model_validator(mode='after')
    def derive_current_balance(self) -> 'Account':
        self.recalculate_balance()
        return self

    @classmethod
    def open(
        cls,
        name: str,
        starting_balance: Decimal = ZERO,
        account_type: AccountType = AccountType.DEBIT,
        icon: str = "creditcard",
        color: str = "Blue",
    ) -> 'Account':
        """
        Create an account from user input.

        For credit accounts the user enters the amount owed as a
        positive number; it is stored negated so the balance fold
        treats it as debt.
        """
        return cls(
            name=name,
            starting_balance=Decimal(starting_balance) * account_type.balance_multiplier,
            account_type=account_type,
            icon=icon,
            color=color,
        )

    def recalculate_balance(self) -> Decimal:
        self.current_balance = self.starting_balance + sum(
            (t.signed_amount for t in self.transactions),
            ZERO,
        )
        return self.current_balance

    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    @property
    def is_in_debt(self) -> bool:
        return self.account_type == AccountType.CREDIT and self.current_balance < 0

    @property
    def debt_amount(self) -> Decimal:
        if self.account_type != AccountType.CREDIT:
            return ZERO
        return abs(min(self.current_balance, ZERO))

    @property
    def available_credit(self) -> Decimal:
        if self.account_type != AccountType.CREDIT:
            return ZERO
        return max(self.current_balance, ZERO)

    @property
    def has_transfers(self) -> bool:
        return any(t.is_transfer for t in self.transactions)


class AccountBackup(BaseModel):
    """Point-in-time copy of every account."""

    accounts: list[Account]
    backup_date: datetime
    version: str = "1.0"


# =============================================================================
# RECURRING PAYMENT
# =============================================================================

class RecurringPayment(BaseModel):
    """
    A template that periodically stamps out a Transaction.

    INVARIANT: next_due_date only moves forward, one frequency step
    at a time, computed from the previous next_due_date (never from
    "now").
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(default=DEFAULT_CATEGORY, max_length=100)
    category_icon: str = Field(default="questionmark.circle.fill")
    account_id: UUID
    frequency: Frequency
    next_due_date: datetime
    payee: str = Field(default="", max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    type: TransactionType = TransactionType.EXPENSE
    is_active: bool = True
    last_processed_date: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_type(self) -> 'RecurringPayment':
        if self.type == TransactionType.TRANSFER:
            raise ValueError("Transfers cannot be recurring payments")
        return self

    def is_due(self, now: datetime) -> bool:
        return self.is_active and self.next_due_date <= now

    def occurrence_id(self, scheduled_for: datetime) -> UUID:
        """
        Deterministic transaction ID for one scheduled occurrence.

        Replaying the same occurrence yields the same ID, which lets
        the ledger recognise a transaction it has already recorded.
        """
        return uuid5(self.id, scheduled_for.isoformat())

    def stamp_transaction(self, scheduled_for: datetime, dated: datetime) -> Transaction:
        """Build the transaction for one occurrence without touching the template."""
        return Transaction(
            id=self.occurrence_id(scheduled_for),
            amount=self.amount,
            category=self.category,
            account_id=self.account_id,
            date=dated,
            payee=self.payee,
            type=self.type,
            notes=f"Recurring: {self.notes or self.name}",
            recurring_payment_id=self.id,
        )

    def process(self, now: datetime, dated: Optional[datetime] = None) -> Transaction:
        """
        Emit the transaction for the current due date and advance.

        The transaction is dated now unless dated is given; the next
        due date is one period after the previous due date.
        """
        scheduled_for = self.next_due_date
        transaction = self.stamp_transaction(scheduled_for, dated=dated or now)
        self.last_processed_date = now
        self.next_due_date = self.frequency.next_date(scheduled_for)
        return transaction


# =============================================================================
# CATEGORY CATALOG
# =============================================================================

class CustomCategory(BaseModel):
    """A user-visible category. Built-in ones have is_default=True."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="questionmark.circle.fill")
    color: str = Field(default="Blue")
    type: CategoryType
    is_default: bool = False


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single integrity issue found in ledger state."""

    entity_type: str = Field(
        ...,
        description="Type of entity with the issue (account, transaction, recurring_payment)"
    )
    entity_id: UUID
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'balance_mismatch', 'dangling_link')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Result of an integrity check over accounts and recurring payments."""

    validated_at: datetime = Field(default_factory=datetime.now)
    accounts_checked: int = Field(default=0, ge=0)
    transactions_checked: int = Field(default=0, ge=0)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "warning")


# =============================================================================
# REPORT MODELS
# =============================================================================

class ReportGrouping(str, Enum):
    CATEGORY = "category"
    PAYEE = "payee"
    MONTH = "month"
    TYPE = "type"


class ReportQuery(BaseModel):
    """
    A spending report request.

    Dates are inclusive whole days: date_to covers the entire day.
    """

    query_id: UUID = Field(default_factory=uuid4)
    group_by: ReportGrouping = ReportGrouping.CATEGORY
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    transaction_type: Optional[TransactionType] = None
    account_id: Optional[UUID] = None
    include_transfers: bool = False
    limit: int = Field(default=50, ge=1, le=500)

    @model_validator(mode='after')
    def validate_range(self) -> 'ReportQuery':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class ReportItem(BaseModel):
    """One group of a report."""

    name: str
    amount: Decimal
    transaction_count: int = Field(ge=0)
    percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    transaction_ids: list[UUID] = Field(default_factory=list)


class ReportResult(BaseModel):
    query_id: UUID
    executed_at: datetime = Field(default_factory=datetime.now)
    success: bool
    error_message: Optional[str] = None
    data_found: bool
    result_count: int = Field(ge=0)
    total_amount: Decimal = ZERO
    items: list[ReportItem] = Field(default_factory=list)
    query_description: str


class InsightType(str, Enum):
    PATTERN = "pattern"
    CATEGORY = "category"
    ANOMALY = "anomaly"


class SpendingInsight(BaseModel):
    type: InsightType
    title: str
    message: str
    icon: str
