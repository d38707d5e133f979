"""
Tests for reports and spending insights
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from spendtracker.models import (
    InsightType,
    ReportGrouping,
    ReportQuery,
    Transaction,
    TransactionType,
)
from spendtracker.reports import ReportExecutor, SpendingInsightsEngine


def transaction(amount, when, type=TransactionType.EXPENSE, **kwargs):
    return Transaction(
        amount=Decimal(amount),
        account_id=uuid4(),
        date=when,
        type=type,
        **kwargs,
    )


class TestReportExecutor:
    """Tests for grouped spending reports."""

    @pytest.fixture
    def executor(self, ledger, checking, savings):
        ledger.add_transaction(
            transaction("60.00", datetime(2024, 3, 1, 9, 0), category="Groceries", payee="Market"),
            checking.id,
        )
        ledger.add_transaction(
            transaction("40.00", datetime(2024, 3, 2, 9, 0), category="Groceries", payee="Market"),
            checking.id,
        )
        ledger.add_transaction(
            transaction("20.00", datetime(2024, 3, 3, 18, 30), category="Food"),
            checking.id,
        )
        ledger.add_transaction(
            transaction("1000.00", datetime(2024, 2, 28, 9, 0), type=TransactionType.INCOME, category="Salary"),
            savings.id,
        )
        ledger.add_transfer(
            Decimal("100.00"), checking.id, savings.id, date=datetime(2024, 3, 5, 12, 0)
        )
        return ReportExecutor(ledger)

    def test_expenses_by_category(self, executor):
        result = executor.execute(ReportQuery(transaction_type=TransactionType.EXPENSE))

        assert result.success and result.data_found
        assert result.result_count == 3
        assert result.total_amount == Decimal("120.00")
        assert [(i.name, i.amount) for i in result.items] == [
            ("Groceries", Decimal("100.00")),
            ("Food", Decimal("20.00")),
        ]
        assert result.items[0].percentage == pytest.approx(83.33)
        assert result.items[0].transaction_count == 2
        assert len(result.items[0].transaction_ids) == 2

    def test_transfers_excluded_by_default(self, executor):
        result = executor.execute(ReportQuery(group_by=ReportGrouping.TYPE))
        assert {i.name for i in result.items} == {"expense", "income"}

    def test_included_transfers_count_once(self, executor):
        result = executor.execute(ReportQuery(group_by=ReportGrouping.TYPE, include_transfers=True))

        transfers = [i for i in result.items if i.name == "transfer"]
        assert len(transfers) == 1
        assert transfers[0].amount == Decimal("100.00")
        assert transfers[0].transaction_count == 1
        assert result.total_amount == Decimal("1220.00")

    def test_date_range_is_inclusive(self, executor):
        result = executor.execute(ReportQuery(
            date_from=date(2024, 3, 2),
            date_to=date(2024, 3, 3),
        ))
        assert result.result_count == 2
        assert result.total_amount == Decimal("60.00")

    def test_group_by_payee_and_month(self, executor):
        by_payee = executor.execute(ReportQuery(
            group_by=ReportGrouping.PAYEE, transaction_type=TransactionType.EXPENSE
        ))
        assert [i.name for i in by_payee.items] == ["Market", "(no payee)"]

        by_month = executor.execute(ReportQuery(group_by=ReportGrouping.MONTH))
        assert [i.name for i in by_month.items] == ["2024-02", "2024-03"]

    def test_account_filter(self, executor, savings):
        result = executor.execute(ReportQuery(account_id=savings.id))
        assert result.result_count == 1
        assert result.query_description == "Transactions by category in Savings"

    def test_limit_keeps_full_total(self, executor):
        result = executor.execute(ReportQuery(transaction_type=TransactionType.EXPENSE, limit=1))
        assert len(result.items) == 1
        assert result.total_amount == Decimal("120.00")

    def test_no_data(self, executor):
        result = executor.execute(ReportQuery(date_from=date(2023, 1, 1), date_to=date(2023, 1, 31)))
        assert result.success
        assert not result.data_found
        assert result.items == []

    def test_unknown_account_fails_softly(self, executor):
        result = executor.execute(ReportQuery(account_id=uuid4()))
        assert not result.success
        assert result.error_message

    def test_description(self, executor):
        result = executor.execute(ReportQuery(
            transaction_type=TransactionType.EXPENSE,
            date_from=date(2024, 3, 1),
            date_to=date(2024, 3, 31),
        ))
        assert result.query_description == "Expense transactions by category in March 2024"


class TestSpendingInsightsEngine:
    """Tests for spending insights."""

    def test_weekend_and_top_category(self):
        expenses = [
            transaction("10.00", datetime(2024, 3, 11), category="Transport"),  # Monday
            transaction("10.00", datetime(2024, 3, 12), category="Transport"),
            transaction("30.00", datetime(2024, 3, 16), category="Dining"),  # Saturday
        ]

        insights = SpendingInsightsEngine().generate(expenses)

        assert [i.type for i in insights] == [InsightType.PATTERN, InsightType.CATEGORY]
        assert insights[0].message == "You spend 200% more on weekends"
        assert insights[1].message == "Dining: $30"

    def test_no_weekend_alert_when_spending_is_even(self):
        expenses = [
            transaction("10.00", datetime(2024, 3, 11)),
            transaction("11.00", datetime(2024, 3, 16)),
        ]
        insights = SpendingInsightsEngine().generate(expenses)
        assert InsightType.PATTERN not in [i.type for i in insights]

    def test_unusual_spending(self):
        expenses = [transaction("10.00", datetime(2024, 3, 11)) for _ in range(11)]
        expenses.append(transaction("100.00", datetime(2024, 3, 12)))

        unusual = SpendingInsightsEngine.unusual_expenses(expenses)

        assert [t.amount for t in unusual] == [Decimal("100.00")]
        insights = SpendingInsightsEngine().generate(expenses)
        assert insights[-1].type == InsightType.ANOMALY

    def test_unusual_needs_enough_history(self):
        expenses = [transaction("10.00", datetime(2024, 3, 11)) for _ in range(9)]
        expenses.append(transaction("100.00", datetime(2024, 3, 12)))
        assert SpendingInsightsEngine.unusual_expenses(expenses) == []

    def test_income_is_ignored(self):
        incomes = [transaction("500.00", datetime(2024, 3, 16), type=TransactionType.INCOME)]
        assert SpendingInsightsEngine().generate(incomes) == []
