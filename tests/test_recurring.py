"""
Tests for the RecurringPaymentStore

Due detection, processing, catch-up planning and the plan/commit split.
"""

import threading
import time
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from spendtracker.ledger import (
    InvariantViolationError,
    NotFoundError,
    PersistenceError,
    RecurringPaymentStore,
)
from spendtracker.models import (
    AuditEventType,
    CatchUpPolicy,
    Frequency,
    RecurringPayment,
    TransactionType,
)

from conftest import NOW, fixed_clock


def make_payment(next_due_date, **kwargs):
    defaults = dict(
        name="Rent",
        amount=Decimal("950.00"),
        account_id=uuid4(),
        frequency=Frequency.MONTHLY,
        next_due_date=next_due_date,
        payee="Landlord",
    )
    defaults.update(kwargs)
    return RecurringPayment(**defaults)


@pytest.fixture
def backfill(recurring_repo, audit_logger):
    store = RecurringPaymentStore(
        recurring_repo,
        audit_logger,
        clock=fixed_clock,
        catch_up_policy=CatchUpPolicy.BACKFILL,
    )
    store.load()
    return store


class TestTemplateManagement:
    """Tests for adding, updating, toggling and deleting templates."""

    def test_add_payment_persists(self, recurring, recurring_repo):
        payment = recurring.add_payment(make_payment(datetime(2024, 4, 1)))

        assert [p.id for p in recurring_repo.load()] == [payment.id]
        assert recurring.get_payment(payment.id).name == "Rent"

    def test_duplicate_payment_rejected(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 4, 1)))
        with pytest.raises(InvariantViolationError):
            recurring.add_payment(payment)

    def test_update_payment(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 4, 1)))

        recurring.update_payment(payment.model_copy(update={"amount": Decimal("1000.00")}))

        assert recurring.get_payment(payment.id).amount == Decimal("1000.00")

    def test_unknown_payment_raises(self, recurring):
        with pytest.raises(NotFoundError):
            recurring.get_payment(uuid4())
        with pytest.raises(NotFoundError):
            recurring.update_payment(make_payment(datetime(2024, 4, 1)))
        with pytest.raises(NotFoundError):
            recurring.delete_payment(uuid4())

    def test_delete_payment(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 4, 1)))
        recurring.delete_payment(payment.id)
        assert recurring.payments == []

    def test_toggle_active(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))

        paused = recurring.toggle_active(payment.id)
        assert not paused.is_active
        assert recurring.get_due_payments() == []

        resumed = recurring.toggle_active(payment.id)
        assert resumed.is_active
        assert [p.id for p in recurring.get_due_payments()] == [payment.id]

    def test_payments_for_account(self, recurring):
        account_id = uuid4()
        mine = recurring.add_payment(make_payment(datetime(2024, 4, 1), account_id=account_id))
        recurring.add_payment(make_payment(datetime(2024, 4, 1)))

        assert [p.id for p in recurring.payments_for_account(account_id)] == [mine.id]

    def test_reassign_account(self, recurring, recurring_repo, audit_storage):
        old, new = uuid4(), uuid4()
        mine = recurring.add_payment(make_payment(datetime(2024, 4, 1), account_id=old))
        other = recurring.add_payment(make_payment(datetime(2024, 4, 1)))

        moved = recurring.reassign_account(old, new)

        assert [p.id for p in moved] == [mine.id]
        assert recurring.get_payment(mine.id).account_id == new
        assert recurring.get_payment(other.id).account_id == other.account_id
        assert [e.event_type for e in audit_storage.get_events_by_entity("recurring_payment", mine.id)] == [
            AuditEventType.RECURRING_PAYMENT_CREATED,
            AuditEventType.RECURRING_PAYMENT_UPDATED,
        ]

        saves = recurring_repo.save_count
        assert recurring.reassign_account(old, new) == []
        assert recurring_repo.save_count == saves

    def test_backfill_cap_must_be_positive(self, recurring_repo):
        with pytest.raises(ValueError):
            RecurringPaymentStore(recurring_repo, max_backfill_periods=0)


class TestDueDetection:
    """Due detection never changes state."""

    def test_due_payments_are_stable(self, recurring, recurring_repo):
        due = recurring.add_payment(make_payment(datetime(2024, 3, 15, 9, 0)))
        recurring.add_payment(make_payment(datetime(2024, 3, 16)))
        saves = recurring_repo.save_count

        first = recurring.get_due_payments()
        second = recurring.get_due_payments()

        assert [p.id for p in first] == [p.id for p in second] == [due.id]
        assert recurring_repo.save_count == saves
        assert recurring.get_payment(due.id).next_due_date == datetime(2024, 3, 15, 9, 0)

    def test_upcoming_payments(self, recurring):
        soon = recurring.add_payment(make_payment(NOW + timedelta(days=3)))
        sooner = recurring.add_payment(make_payment(NOW + timedelta(days=1)))
        recurring.add_payment(make_payment(NOW + timedelta(days=10)))
        recurring.add_payment(make_payment(NOW - timedelta(days=1)))
        recurring.add_payment(make_payment(NOW + timedelta(days=2), is_active=False))

        upcoming = recurring.upcoming_payments(within_days=7)

        assert [p.id for p in upcoming] == [sooner.id, soon.id]


class TestProcessPayment:
    """Tests for processing a single payment."""

    def test_month_end_due_date_is_clamped(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 1, 31)))
        now = datetime(2024, 2, 15)

        transaction = recurring.process_payment(payment.id, now=now)

        assert transaction.date == now
        assert transaction.amount == Decimal("950.00")
        assert transaction.type == TransactionType.EXPENSE
        assert transaction.id == payment.occurrence_id(datetime(2024, 1, 31))
        stored = recurring.get_payment(payment.id)
        assert stored.next_due_date == datetime(2024, 2, 29)
        assert stored.last_processed_date == now

    def test_processing_is_audited(self, recurring, audit_storage):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        correlation_id = uuid4()

        recurring.process_payment(payment.id, correlation_id=correlation_id)

        events = audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.RECURRING_PAYMENT_PROCESSED]

    def test_failed_save_keeps_due_date(self, recurring, recurring_repo):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        recurring_repo.fail_saves = True

        with pytest.raises(PersistenceError):
            recurring.process_payment(payment.id)

        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 3, 1)


class TestCatchUp:
    """Tests for due-payment sweeps under each catch-up policy."""

    def test_latest_only_emits_one_per_sweep(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 1, 1)))

        transactions = recurring.check_and_process_due_payments()

        assert len(transactions) == 1
        assert transactions[0].date == NOW
        # One period per sweep, so the payment is still overdue
        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 2, 1)
        assert len(recurring.get_due_payments()) == 1

    def test_backfill_emits_one_per_period(self, backfill):
        payment = backfill.add_payment(make_payment(datetime(2024, 1, 1)))

        transactions = backfill.check_and_process_due_payments()

        assert [t.date for t in transactions] == [
            datetime(2024, 1, 1),
            datetime(2024, 2, 1),
            datetime(2024, 3, 1),
        ]
        assert len({t.id for t in transactions}) == 3
        assert backfill.get_payment(payment.id).next_due_date == datetime(2024, 4, 1)
        assert backfill.get_due_payments() == []

    def test_backfill_is_capped(self, recurring_repo):
        store = RecurringPaymentStore(
            recurring_repo,
            clock=fixed_clock,
            catch_up_policy=CatchUpPolicy.BACKFILL,
            max_backfill_periods=2,
        )
        store.load()
        payment = store.add_payment(make_payment(datetime(2024, 1, 1)))

        transactions = store.check_and_process_due_payments()

        assert len(transactions) == 2
        assert store.get_payment(payment.id).next_due_date == datetime(2024, 3, 1)

    def test_inactive_and_future_payments_are_left_alone(self, recurring):
        recurring.add_payment(make_payment(datetime(2024, 3, 1), is_active=False))
        recurring.add_payment(make_payment(datetime(2024, 4, 1)))

        assert recurring.check_and_process_due_payments() == []

    def test_concurrent_sweeps_emit_one_transaction(self, recurring, monkeypatch):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        plan_due_payments = recurring.plan_due_payments

        def slow_plan(now=None, account_ids=None):
            plan = plan_due_payments(now, account_ids)
            time.sleep(0.05)
            return plan

        monkeypatch.setattr(recurring, "plan_due_payments", slow_plan)
        batches = []

        def sweep():
            batches.append(len(recurring.check_and_process_due_payments()))

        threads = [threading.Thread(target=sweep) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(batches) == [0, 1]
        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 4, 1)


class TestPlanAndCommit:
    """Tests for the plan/commit split."""

    def test_plan_does_not_change_state(self, recurring, recurring_repo):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        saves = recurring_repo.save_count

        plan = recurring.plan_due_payments()

        assert len(plan.occurrences) == 1
        assert plan.occurrences[0].scheduled_for == datetime(2024, 3, 1)
        assert plan.payments[0].next_due_date == datetime(2024, 4, 1)
        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 3, 1)
        assert recurring_repo.save_count == saves

    def test_replanning_yields_same_ids(self, recurring):
        recurring.add_payment(make_payment(datetime(2024, 3, 1)))

        first = recurring.plan_due_payments()
        second = recurring.plan_due_payments()

        assert [t.id for t in first.transactions] == [t.id for t in second.transactions]

    def test_plan_skips_unknown_accounts(self, recurring):
        known = uuid4()
        recurring.add_payment(make_payment(datetime(2024, 3, 1), account_id=known))
        recurring.add_payment(make_payment(datetime(2024, 3, 1)))

        plan = recurring.plan_due_payments(account_ids={known})

        assert [t.account_id for t in plan.transactions] == [known]

    def test_committing_twice_never_regresses(self, recurring, audit_storage):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        plan = recurring.plan_due_payments()

        assert len(recurring.commit_plan(plan)) == 1
        assert recurring.commit_plan(plan) == []

        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 4, 1)
        processed = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.RECURRING_PAYMENT_PROCESSED
        ]
        assert len(processed) == 1

    def test_stale_plan_does_not_move_due_date_back(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        stale = recurring.plan_due_payments()
        recurring.update_payment(
            recurring.get_payment(payment.id).model_copy(
                update={"next_due_date": datetime(2024, 6, 1)}
            )
        )

        assert recurring.commit_plan(stale) == []

        assert recurring.get_payment(payment.id).next_due_date == datetime(2024, 6, 1)

    def test_commit_skips_deleted_payments(self, recurring):
        payment = recurring.add_payment(make_payment(datetime(2024, 3, 1)))
        plan = recurring.plan_due_payments()
        recurring.delete_payment(payment.id)

        recurring.commit_plan(plan)

        assert recurring.payments == []

    def test_empty_plan_commits_nothing(self, recurring, recurring_repo):
        plan = recurring.plan_due_payments()
        saves = recurring_repo.save_count

        assert plan.is_empty
        assert recurring.commit_plan(plan) == []
        assert recurring_repo.save_count == saves
