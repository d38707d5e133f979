"""
Spending insights: short observations drawn from expense history.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from spendtracker.models.ledger import (
    ZERO,
    InsightType,
    SpendingInsight,
    Transaction,
    TransactionType,
)


WEEKEND_RATIO = Decimal("1.2")
UNUSUAL_RATIO = Decimal("2.5")
UNUSUAL_MIN_EXPENSES = 10

SATURDAY = 5


class SpendingInsightsEngine:
    """Pattern, top-category and anomaly insights over expense transactions."""

    def generate(self, transactions: Iterable[Transaction]) -> list[SpendingInsight]:
        expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]
        insights = []

        weekend = self._weekend_insight(expenses)
        if weekend:
            insights.append(weekend)

        top = self.top_spending_category(expenses)
        if top:
            name, amount = top
            insights.append(SpendingInsight(
                type=InsightType.CATEGORY,
                title="Top Spending Category",
                message=f"{name}: ${amount:.0f}",
                icon="chart.pie.fill",
            ))

        unusual = self.unusual_expenses(expenses)
        if unusual:
            insights.append(SpendingInsight(
                type=InsightType.ANOMALY,
                title="Unusual Spending Detected",
                message=f"{len(unusual)} transactions seem higher than usual",
                icon="exclamationmark.triangle.fill",
            ))

        return insights

    @staticmethod
    def weekend_averages(expenses: list[Transaction]) -> tuple[Decimal, Decimal]:
        """(weekend average, weekday average); zero where there are none."""
        weekend = [t.amount for t in expenses if t.date.weekday() >= SATURDAY]
        weekday = [t.amount for t in expenses if t.date.weekday() < SATURDAY]
        weekend_avg = sum(weekend, ZERO) / len(weekend) if weekend else ZERO
        weekday_avg = sum(weekday, ZERO) / len(weekday) if weekday else ZERO
        return weekend_avg, weekday_avg

    def _weekend_insight(self, expenses: list[Transaction]) -> Optional[SpendingInsight]:
        weekend_avg, weekday_avg = self.weekend_averages(expenses)
        if weekend_avg <= 0 or weekday_avg <= 0:
            return None
        if weekend_avg <= weekday_avg * WEEKEND_RATIO:
            return None

        percentage = int((weekend_avg / weekday_avg - 1) * 100)
        return SpendingInsight(
            type=InsightType.PATTERN,
            title="Weekend Spending Alert",
            message=f"You spend {percentage}% more on weekends",
            icon="calendar.badge.exclamationmark",
        )

    @staticmethod
    def top_spending_category(expenses: list[Transaction]) -> Optional[tuple[str, Decimal]]:
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for transaction in expenses:
            totals[transaction.display_category] += transaction.amount
        if not totals:
            return None
        name = max(totals, key=lambda key: totals[key])
        return name, totals[name]

    @staticmethod
    def unusual_expenses(expenses: list[Transaction]) -> list[Transaction]:
        """Expenses above 2.5x the average; only judged with more than 10 expenses."""
        if len(expenses) <= UNUSUAL_MIN_EXPENSES:
            return []
        average = sum((t.amount for t in expenses), ZERO) / len(expenses)
        threshold = average * UNUSUAL_RATIO
        return [t for t in expenses if t.amount > threshold]
