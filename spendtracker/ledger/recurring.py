"""
Recurring Payment Store

Owns the recurring payment templates and decides when they produce
transactions. It never writes to the ledger itself: processing returns
the stamped transactions and the caller records them.

DESIGN DECISION: A due-payment sweep is split into plan and commit.
plan_due_payments computes the advanced templates and the stamped
transactions without touching state; commit_plan applies them. The
orchestrator records the planned transactions in the ledger BETWEEN the
two steps, so a crash can only leave transactions recorded with their
templates not yet advanced. The next sweep then replans the same
occurrences, the stamped IDs are the same, and the ledger skips them.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from spendtracker.audit import AuditLogger
from spendtracker.ledger.base import Clock, PersistedStore
from spendtracker.ledger.errors import InvariantViolationError, NotFoundError
from spendtracker.models.audit import AuditEventBuilder, AuditEventType
from spendtracker.models.ledger import CatchUpPolicy, RecurringPayment, Transaction
from spendtracker.services.storage import CollectionRepository


DEFAULT_MAX_BACKFILL_PERIODS = 366


class PlannedOccurrence(BaseModel):
    """One scheduled occurrence of a payment and the transaction it stamps."""

    payment_id: UUID
    scheduled_for: datetime
    transaction: Transaction


class DuePaymentPlan(BaseModel):
    """
    A computed, uncommitted due-payment sweep.

    payments holds the templates as they will be after the sweep;
    occurrences holds every transaction the sweep emits, in order.
    """

    planned_at: datetime
    policy: CatchUpPolicy
    payments: list[RecurringPayment] = Field(default_factory=list)
    occurrences: list[PlannedOccurrence] = Field(default_factory=list)

    @property
    def transactions(self) -> list[Transaction]:
        return [o.transaction for o in self.occurrences]

    @property
    def is_empty(self) -> bool:
        return not self.occurrences


class RecurringPaymentStore(PersistedStore[RecurringPayment]):
    """
    Owns recurring payment templates.

    Every mutation persists the whole collection once and is rolled
    back in memory if the save fails.
    """

    def __init__(
        self,
        repository: CollectionRepository[RecurringPayment],
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        catch_up_policy: CatchUpPolicy = CatchUpPolicy.LATEST_ONLY,
        max_backfill_periods: int = DEFAULT_MAX_BACKFILL_PERIODS,
    ):
        if max_backfill_periods < 1:
            raise ValueError("max_backfill_periods must be at least 1")
        super().__init__(repository, audit_logger, clock)
        self._catch_up_policy = catch_up_policy
        self._max_backfill_periods = max_backfill_periods

    @property
    def catch_up_policy(self) -> CatchUpPolicy:
        return self._catch_up_policy

    def load(self) -> list[RecurringPayment]:
        payments = self._load_items()
        self._logger.info("recurring_payments_loaded", count=len(payments))
        return payments

    def _find(self, payment_id: UUID) -> RecurringPayment:
        for payment in self._items:
            if payment.id == payment_id:
                return payment
        raise NotFoundError("recurring_payment", payment_id)

    # =========================================================================
    # Template management
    # =========================================================================

    @property
    def payments(self) -> list[RecurringPayment]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._items]

    def get_payment(self, payment_id: UUID) -> RecurringPayment:
        with self._lock:
            return self._find(payment_id).model_copy(deep=True)

    def payments_for_account(self, account_id: UUID) -> list[RecurringPayment]:
        return [p for p in self.payments if p.account_id == account_id]

    def add_payment(
        self,
        payment: RecurringPayment,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringPayment:
        with self._mutation() as events:
            if any(p.id == payment.id for p in self._items):
                raise InvariantViolationError(f"Recurring payment already exists: {payment.id}")
            stored = payment.model_copy(deep=True)
            self._items.append(stored)
            events.append(AuditEventBuilder.recurring_payment_changed(
                event_type=AuditEventType.RECURRING_PAYMENT_CREATED,
                payment_id=stored.id,
                name=stored.name,
                details={
                    "amount": str(stored.amount),
                    "frequency": stored.frequency.value,
                    "next_due_date": stored.next_due_date.isoformat(),
                },
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def update_payment(
        self,
        payment: RecurringPayment,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringPayment:
        """Replace a template by ID."""
        with self._mutation() as events:
            self._find(payment.id)
            stored = payment.model_copy(deep=True)
            self._items = [stored if p.id == stored.id else p for p in self._items]
            events.append(AuditEventBuilder.recurring_payment_changed(
                event_type=AuditEventType.RECURRING_PAYMENT_UPDATED,
                payment_id=stored.id,
                name=stored.name,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def delete_payment(self, payment_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        with self._mutation() as events:
            payment = self._find(payment_id)
            self._items = [p for p in self._items if p.id != payment_id]
            events.append(AuditEventBuilder.recurring_payment_changed(
                event_type=AuditEventType.RECURRING_PAYMENT_DELETED,
                payment_id=payment_id,
                name=payment.name,
                correlation_id=correlation_id,
            ))

    def toggle_active(self, payment_id: UUID, correlation_id: Optional[UUID] = None) -> RecurringPayment:
        with self._mutation() as events:
            payment = self._find(payment_id)
            payment.is_active = not payment.is_active
            events.append(AuditEventBuilder.recurring_payment_changed(
                event_type=AuditEventType.RECURRING_PAYMENT_TOGGLED,
                payment_id=payment_id,
                name=payment.name,
                details={"is_active": payment.is_active},
                correlation_id=correlation_id,
            ))
        return payment.model_copy(deep=True)

    def reassign_account(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[RecurringPayment]:
        """
        Point every template posting to one account at another.

        Returns:
            The reassigned templates (empty without a save if none matched)
        """
        with self._lock:
            if not any(p.account_id == from_account_id for p in self._items):
                return []

            with self._mutation() as events:
                moved = [p for p in self._items if p.account_id == from_account_id]
                for payment in moved:
                    payment.account_id = to_account_id
                    events.append(AuditEventBuilder.recurring_payment_changed(
                        event_type=AuditEventType.RECURRING_PAYMENT_UPDATED,
                        payment_id=payment.id,
                        name=payment.name,
                        details={
                            "from_account_id": str(from_account_id),
                            "to_account_id": str(to_account_id),
                        },
                        correlation_id=correlation_id,
                    ))
            return [p.model_copy(deep=True) for p in moved]

    # =========================================================================
    # Due detection and processing
    # =========================================================================

    def get_due_payments(self, now: Optional[datetime] = None) -> list[RecurringPayment]:
        """Active payments whose due date has arrived. Does not change state."""
        now = now or self._clock()
        return [p for p in self.payments if p.is_due(now)]

    def upcoming_payments(
        self,
        within_days: int = 7,
        now: Optional[datetime] = None,
    ) -> list[RecurringPayment]:
        """Active payments falling due after now and within the window, soonest first."""
        now = now or self._clock()
        horizon = now + timedelta(days=within_days)
        upcoming = [
            p for p in self.payments
            if p.is_active and now < p.next_due_date <= horizon
        ]
        return sorted(upcoming, key=lambda p: p.next_due_date)

    def process_payment(
        self,
        payment_id: UUID,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Stamp the transaction for one payment's current due date and advance it.

        The transaction is dated now. The caller records it in the ledger.
        """
        now = now or self._clock()
        with self._mutation() as events:
            payment = self._find(payment_id)
            scheduled_for = payment.next_due_date
            transaction = payment.process(now)
            events.append(AuditEventBuilder.recurring_payment_processed(
                payment_id=payment_id,
                transaction_id=transaction.id,
                scheduled_for=scheduled_for,
                next_due_date=payment.next_due_date,
                correlation_id=correlation_id,
            ))
        return transaction

    def plan_due_payments(
        self,
        now: Optional[datetime] = None,
        account_ids: Optional[set[UUID]] = None,
    ) -> DuePaymentPlan:
        """
        Compute a due-payment sweep without changing any state.

        LATEST_ONLY emits one transaction per due payment, dated now.
        BACKFILL emits one transaction per elapsed period, dated at its
        scheduled due date, up to max_backfill_periods per payment.

        Args:
            now: Sweep time
            account_ids: If given, payments for other accounts are left
                out of the plan (and stay due)
        """
        now = now or self._clock()
        plan = DuePaymentPlan(planned_at=now, policy=self._catch_up_policy)

        with self._lock:
            for payment in self._items:
                if not payment.is_due(now):
                    continue
                if account_ids is not None and payment.account_id not in account_ids:
                    self._logger.warning(
                        "recurring_payment_skipped",
                        payment_id=str(payment.id),
                        account_id=str(payment.account_id),
                        reason="unknown account",
                    )
                    continue

                advanced = payment.model_copy(deep=True)
                if self._catch_up_policy == CatchUpPolicy.BACKFILL:
                    self._plan_backfill(advanced, now, plan)
                else:
                    scheduled_for = advanced.next_due_date
                    plan.occurrences.append(PlannedOccurrence(
                        payment_id=advanced.id,
                        scheduled_for=scheduled_for,
                        transaction=advanced.process(now),
                    ))
                plan.payments.append(advanced)

        return plan

    def _plan_backfill(self, payment: RecurringPayment, now: datetime, plan: DuePaymentPlan) -> None:
        periods = 0
        while payment.is_due(now) and periods < self._max_backfill_periods:
            scheduled_for = payment.next_due_date
            plan.occurrences.append(PlannedOccurrence(
                payment_id=payment.id,
                scheduled_for=scheduled_for,
                transaction=payment.process(now, dated=scheduled_for),
            ))
            periods += 1

        if payment.is_due(now):
            self._logger.warning(
                "backfill_capped",
                payment_id=str(payment.id),
                max_periods=self._max_backfill_periods,
                next_due_date=payment.next_due_date.isoformat(),
            )

    def commit_plan(
        self,
        plan: DuePaymentPlan,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Apply a plan's advanced templates and persist them once.

        Templates deleted since planning are skipped. A template is
        only replaced if the plan moves its due date forward, so
        committing a stale or already-applied plan never regresses it.

        Returns:
            The transactions of the occurrences this commit advanced
        """
        if plan.is_empty:
            return []

        with self._mutation() as events:
            advanced_to: dict[UUID, datetime] = {}
            for advanced in plan.payments:
                try:
                    current = self._find(advanced.id)
                except NotFoundError:
                    self._logger.warning("planned_payment_missing", payment_id=str(advanced.id))
                    continue
                if advanced.next_due_date <= current.next_due_date:
                    continue
                current.next_due_date = advanced.next_due_date
                current.last_processed_date = advanced.last_processed_date
                advanced_to[current.id] = current.next_due_date

            for occurrence in plan.occurrences:
                if occurrence.payment_id not in advanced_to:
                    continue
                events.append(AuditEventBuilder.recurring_payment_processed(
                    payment_id=occurrence.payment_id,
                    transaction_id=occurrence.transaction.id,
                    scheduled_for=occurrence.scheduled_for,
                    next_due_date=advanced_to[occurrence.payment_id],
                    correlation_id=correlation_id,
                ))

        return [o.transaction for o in plan.occurrences if o.payment_id in advanced_to]

    def check_and_process_due_payments(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Process every due payment per the catch-up policy.

        Templates are persisted once; the returned transactions are
        for the caller to record in the ledger.
        """
        with self._lock:
            plan = self.plan_due_payments(now)
            return self.commit_plan(plan, correlation_id=correlation_id)
