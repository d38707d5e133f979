"""
Report Execution Engine

DESIGN DECISION: Reports are computed from the ledger's transactions,
never from cached totals. Every number in a ReportResult can be traced
back to the transaction IDs listed in its items.

Transfers move money between the user's own accounts, so they are left
out of spending reports unless asked for. When included, only the
source leg is counted; counting both legs would double the volume.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from spendtracker.audit import get_logger
from spendtracker.ledger import LedgerError, LedgerStore
from spendtracker.models.ledger import (
    ZERO,
    ReportGrouping,
    ReportItem,
    ReportQuery,
    ReportResult,
    Transaction,
)


NO_PAYEE = "(no payee)"


class ReportExecutor:
    """
    Executes report queries against the ledger.

    GUARANTEES:
    - Only reports transactions that are actually recorded
    - Clear "no data found" if nothing matches
    - Failures come back as an unsuccessful result, not an exception
    """

    def __init__(self, ledger: LedgerStore):
        self._ledger = ledger
        self._logger = get_logger(__name__)

    def execute(self, query: ReportQuery) -> ReportResult:
        try:
            return self._execute(query)
        except LedgerError as e:
            self._logger.warning("report_failed", query_id=str(query.query_id), error=str(e))
            return ReportResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Report failed: {e}",
            )

    def _execute(self, query: ReportQuery) -> ReportResult:
        transactions = self._select(query)
        description = self._describe(query)

        if not transactions:
            return ReportResult(
                query_id=query.query_id,
                success=True,
                data_found=False,
                result_count=0,
                query_description=description,
            )

        groups: dict[str, list[Transaction]] = defaultdict(list)
        for transaction in transactions:
            groups[self._group_key(transaction, query.group_by)].append(transaction)

        total = sum((t.amount for t in transactions), ZERO)
        items = [
            ReportItem(
                name=name,
                amount=sum((t.amount for t in members), ZERO),
                transaction_count=len(members),
                percentage=self._percentage(sum((t.amount for t in members), ZERO), total),
                transaction_ids=[t.id for t in members],
            )
            for name, members in groups.items()
        ]
        items.sort(key=lambda item: (-abs(item.amount), item.name))

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=True,
            result_count=len(transactions),
            total_amount=total,
            items=items[:query.limit],
            query_description=description,
        )

    def _select(self, query: ReportQuery) -> list[Transaction]:
        if query.account_id is not None:
            candidates = self._ledger.get_account(query.account_id).transactions
        else:
            candidates = self._ledger.all_transactions()

        selected = []
        for transaction in candidates:
            if transaction.is_transfer:
                if not query.include_transfers or not transaction.is_transfer_source:
                    continue
            if query.transaction_type and transaction.type != query.transaction_type:
                continue
            day = transaction.date.date()
            if query.date_from and day < query.date_from:
                continue
            if query.date_to and day > query.date_to:
                continue
            selected.append(transaction)
        return selected

    @staticmethod
    def _group_key(transaction: Transaction, group_by: ReportGrouping) -> str:
        if group_by == ReportGrouping.CATEGORY:
            return transaction.display_category
        if group_by == ReportGrouping.PAYEE:
            return transaction.payee or NO_PAYEE
        if group_by == ReportGrouping.MONTH:
            return transaction.date.strftime("%Y-%m")
        return transaction.type.value

    @staticmethod
    def _percentage(amount: Decimal, total: Decimal) -> float:
        if total == 0:
            return 0.0
        return min(100.0, round(float(amount / total * 100), 2))

    def _describe(self, query: ReportQuery) -> str:
        parts = []
        if query.transaction_type:
            parts.append(f"{query.transaction_type.value.capitalize()} transactions")
        else:
            parts.append("Transactions")
        parts.append(f"by {query.group_by.value}")
        if query.account_id:
            parts.append(f"in {self._ledger.get_account_name(query.account_id)}")
        if query.date_from or query.date_to:
            parts.append(self._date_range_str(query.date_from, query.date_to))
        return " ".join(parts)

    def _date_range_str(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.month == date_to.month and date_from.year == date_to.year:
                return f"in {date_from.strftime('%B %Y')}"
            return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return ""
