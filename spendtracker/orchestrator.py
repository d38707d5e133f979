"""
Main Orchestrator for SpendTracker

This module ties together all the components and defines the flows
that span more than one store:
1. Recurring processing (due templates → stamped transactions → ledger)
2. Startup (load → validate → catch up on due payments)
3. Account merge (ledger merge → recurring payments repointed)

DESIGN DECISION: The recurring handoff is atomic and idempotent.
- The ledger records the stamped transactions BEFORE the templates
  are advanced, so a failure in between never loses a payment
- Stamped transaction IDs are derived from the template and the due
  date, so replaying the same occurrence is recognised and skipped
- Both store locks are held for the whole handoff, recurring store
  first, then ledger, always in that order

This is the "glue" that keeps the two stores consistent even when
persistence fails halfway through.
"""

from datetime import datetime
from typing import NamedTuple, Optional
from uuid import UUID

from spendtracker.audit import (
    AuditLogger,
    configure_logging,
    create_correlation_id,
    get_logger,
)
from spendtracker.config import Settings, get_settings
from spendtracker.ledger import (
    CategoryCatalog,
    LedgerStore,
    PersistenceError,
    RecurringPaymentStore,
)
from spendtracker.ledger.base import Clock
from spendtracker.models.audit import AuditEventBuilder, AuditSeverity
from spendtracker.models.ledger import (
    Account,
    CustomCategory,
    RecurringPayment,
    Transaction,
    ValidationResult,
)
from spendtracker.reports import ReportExecutor, SpendingInsightsEngine
from spendtracker.services.storage import (
    AuditStorageInterface,
    CollectionRepository,
    InMemoryAuditStorage,
    InMemoryRepository,
    JsonFileRepository,
    JsonLinesAuditStorage,
)
from spendtracker.suggestions import CategorySuggestionEngine, PayeeSuggestionEngine
from spendtracker.validation import LedgerValidator


logger = get_logger(__name__)


class RecurringProcessingFlow:
    """
    Orchestrates the handoff of due recurring payments into the ledger.

    Flow:
    1. Plan → compute advanced templates and stamped transactions
    2. Record → ledger inserts the transactions (skipping known IDs), one save
    3. Commit → recurring store advances the templates, one save

    If step 3 fails, the next run replans the same occurrences and
    step 2 skips them, so nothing is recorded twice.
    """

    def __init__(
        self,
        recurring_store: RecurringPaymentStore,
        ledger: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._recurring = recurring_store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now

    def process_due_payments(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Record every due payment in the ledger and advance the templates.

        Payments whose account no longer exists are skipped and stay due.

        Returns:
            The transactions newly recorded by this run
        """
        correlation_id = correlation_id or create_correlation_id()

        with self._recurring.lock, self._ledger.lock:
            account_ids = {a.id for a in self._ledger.accounts}
            plan = self._recurring.plan_due_payments(now, account_ids=account_ids)
            if plan.is_empty:
                return []

            recorded = self._ledger.record_recurring_transactions(
                plan.transactions,
                correlation_id=correlation_id,
            )
            try:
                self._recurring.commit_plan(plan, correlation_id=correlation_id)
            except PersistenceError as e:
                # Recorded transactions stay; the next run skips them by ID
                if self._audit_logger:
                    self._audit_logger.log(AuditEventBuilder.system_error(
                        error_type="recurring_commit_failed",
                        error_message=str(e),
                        details={"recorded_transactions": len(recorded)},
                        correlation_id=correlation_id,
                    ))
                raise

        logger.info(
            "due_payments_processed",
            policy=plan.policy.value,
            planned=len(plan.occurrences),
            recorded=len(recorded),
            correlation_id=str(correlation_id),
        )
        return recorded

    def process_payment_now(
        self,
        payment_id: UUID,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Process one payment immediately, whether or not it is due.

        The transaction is dated now and recorded before the template
        is advanced.
        """
        correlation_id = correlation_id or create_correlation_id()

        with self._recurring.lock, self._ledger.lock:
            payment = self._recurring.get_payment(payment_id)
            self._ledger.get_account(payment.account_id)
            when = now or self._clock()

            transaction = payment.stamp_transaction(payment.next_due_date, dated=when)
            self._ledger.record_recurring_transactions([transaction], correlation_id=correlation_id)
            self._recurring.process_payment(payment_id, now=when, correlation_id=correlation_id)

        return transaction


class AccountMergeFlow:
    """
    Merges one account into another and moves its recurring payments along.

    The ledger merge is saved first. If repointing the payments then
    fails, they keep naming the merged-away account and every sweep
    skips them until merge_accounts or reassign_account is retried.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        recurring_store: RecurringPaymentStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._recurring = recurring_store
        self._audit_logger = audit_logger

    def merge_accounts(
        self,
        source_id: UUID,
        target_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()

        with self._recurring.lock, self._ledger.lock:
            merged = self._ledger.merge_accounts(source_id, target_id, correlation_id=correlation_id)
            try:
                moved = self._recurring.reassign_account(
                    source_id, target_id, correlation_id=correlation_id
                )
            except PersistenceError as e:
                if self._audit_logger:
                    self._audit_logger.log(AuditEventBuilder.system_error(
                        error_type="recurring_reassign_failed",
                        error_message=str(e),
                        details={"source_id": str(source_id), "target_id": str(target_id)},
                        correlation_id=correlation_id,
                    ))
                raise

        logger.info(
            "accounts_merged",
            source_id=str(source_id),
            target_id=str(target_id),
            recurring_payments_moved=len(moved),
            correlation_id=str(correlation_id),
        )
        return merged


class AppComponents(NamedTuple):
    ledger: LedgerStore
    recurring: RecurringPaymentStore
    categories: CategoryCatalog
    recurring_flow: RecurringProcessingFlow
    account_merge: AccountMergeFlow
    reports: ReportExecutor
    insights: SpendingInsightsEngine
    category_suggestions: CategorySuggestionEngine
    payee_suggestions: PayeeSuggestionEngine
    validator: LedgerValidator
    audit_logger: AuditLogger
    load_validation: Optional[ValidationResult]


def _build_repositories(
    settings: Settings,
) -> tuple[
    CollectionRepository[Account],
    CollectionRepository[RecurringPayment],
    CollectionRepository[CustomCategory],
    AuditStorageInterface,
]:
    storage = settings.storage

    if storage.backend == "memory":
        return (
            InMemoryRepository(Account, "accounts"),
            InMemoryRepository(RecurringPayment, "recurring_payments"),
            InMemoryRepository(CustomCategory, "categories"),
            InMemoryAuditStorage(),
        )

    if storage.backend == "google_sheets":
        # Imported here so the JSON backend does not need Google credentials
        from spendtracker.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsRepository,
        )

        sheets = settings.google_sheets
        client = GoogleSheetsClient(sheets)
        return (
            GoogleSheetsRepository(client, sheets.accounts_sheet_name, Account, "accounts"),
            GoogleSheetsRepository(
                client, sheets.recurring_sheet_name, RecurringPayment, "recurring_payments"
            ),
            GoogleSheetsRepository(client, sheets.categories_sheet_name, CustomCategory, "categories"),
            GoogleSheetsAuditStorage(client),
        )

    return (
        JsonFileRepository(storage.accounts_path, Account, "accounts"),
        JsonFileRepository(storage.recurring_path, RecurringPayment, "recurring_payments"),
        JsonFileRepository(storage.categories_path, CustomCategory, "categories"),
        JsonLinesAuditStorage(storage.audit_path),
    )


def validate_loaded_state(
    validator: LedgerValidator,
    ledger: LedgerStore,
    recurring: RecurringPaymentStore,
    audit_logger: AuditLogger,
) -> ValidationResult:
    """Check loaded state and record every finding as an integrity event."""
    result = validator.validate(ledger.accounts, recurring.payments)
    for issue in result.issues:
        audit_logger.log(AuditEventBuilder.integrity_issue(
            entity_type=issue.entity_type,
            entity_id=issue.entity_id,
            issue_type=issue.issue_type,
            message=issue.message,
            severity=AuditSeverity.ERROR if issue.severity == "error" else AuditSeverity.WARNING,
        ))
    if result.issues:
        logger.warning(
            "ledger_integrity_issues",
            errors=result.error_count,
            warnings=result.warning_count,
        )
    return result


def create_app_components(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> AppComponents:
    """
    Factory function to create and start all application components.

    Loads every collection, validates the loaded ledger if configured,
    and catches up on due recurring payments if configured.

    Args:
        settings: Settings to use; defaults to get_settings()
        clock: Time source for every store; defaults to datetime.now

    Raises:
        StorageError: If a collection cannot be loaded. Loading is not
            retried with empty state, since the next save would
            overwrite the stored data.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    accounts_repo, recurring_repo, categories_repo, audit_storage = _build_repositories(settings)
    audit_logger = AuditLogger(audit_storage)

    ledger = LedgerStore(accounts_repo, audit_logger, clock)
    recurring = RecurringPaymentStore(
        recurring_repo,
        audit_logger,
        clock,
        catch_up_policy=settings.recurring.catch_up_policy,
        max_backfill_periods=settings.recurring.max_backfill_periods,
    )
    categories = CategoryCatalog(categories_repo, audit_logger)

    ledger.load()
    recurring.load()
    categories.load()

    validator = LedgerValidator()
    load_validation = None
    if settings.app.validate_on_load:
        load_validation = validate_loaded_state(validator, ledger, recurring, audit_logger)

    recurring_flow = RecurringProcessingFlow(recurring, ledger, audit_logger, clock)
    if settings.recurring.process_on_startup:
        recurring_flow.process_due_payments()

    logger.info(
        "app_components_ready",
        backend=settings.storage.backend,
        accounts=len(ledger.accounts),
        recurring_payments=len(recurring.payments),
    )

    return AppComponents(
        ledger=ledger,
        recurring=recurring,
        categories=categories,
        recurring_flow=recurring_flow,
        account_merge=AccountMergeFlow(ledger, recurring, audit_logger),
        reports=ReportExecutor(ledger),
        insights=SpendingInsightsEngine(),
        category_suggestions=CategorySuggestionEngine(),
        payee_suggestions=PayeeSuggestionEngine(),
        validator=validator,
        audit_logger=audit_logger,
        load_validation=load_validation,
    )
