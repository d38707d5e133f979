"""
Tests for the LedgerValidator
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from spendtracker.models import Account, Frequency, RecurringPayment, Transaction, TransactionType
from spendtracker.validation import LedgerValidator


WHEN = datetime(2024, 3, 1, 12, 0)


def transfer_pair(source_account, target_account, amount="50.00"):
    source_id, target_id = uuid4(), uuid4()
    source = Transaction(
        id=source_id,
        amount=Decimal(amount),
        account_id=source_account.id,
        date=WHEN,
        type=TransactionType.TRANSFER,
        target_account_id=target_account.id,
        is_transfer_source=True,
        linked_transaction_id=target_id,
    )
    target = Transaction(
        id=target_id,
        amount=Decimal(amount),
        account_id=target_account.id,
        date=WHEN,
        type=TransactionType.TRANSFER,
        target_account_id=source_account.id,
        is_transfer_source=False,
        linked_transaction_id=source_id,
    )
    return source, target


def issue_types(result):
    return [i.issue_type for i in result.issues]


class TestLedgerValidator:
    """Tests for cross-record integrity checks."""

    def test_clean_ledger(self, ledger, checking, savings):
        ledger.add_transfer(Decimal("50.00"), checking.id, savings.id)

        result = LedgerValidator().validate(ledger.accounts)

        assert result.is_valid
        assert result.accounts_checked == 2
        assert result.transactions_checked == 2

    def test_balance_drift(self, checking):
        drifted = checking.model_copy(update={"current_balance": Decimal("5.00")})

        result = LedgerValidator().validate([drifted])

        assert issue_types(result) == ["balance_mismatch"]
        assert result.warning_count == 1
        assert not result.has_errors

    def test_owner_mismatch(self):
        account = Account.open("Checking")
        account.transactions.append(Transaction(
            amount=Decimal("5.00"), account_id=uuid4(), date=WHEN, type=TransactionType.EXPENSE
        ))
        account.recalculate_balance()

        assert issue_types(LedgerValidator().validate([account])) == ["owner_mismatch"]

    def test_duplicate_transaction(self):
        first, second = Account.open("A"), Account.open("B")
        shared = Transaction(amount=Decimal("5.00"), account_id=first.id, date=WHEN, type=TransactionType.EXPENSE)
        first.transactions.append(shared)
        second.transactions.append(shared.model_copy(update={"account_id": second.id}))
        first.recalculate_balance()
        second.recalculate_balance()

        assert issue_types(LedgerValidator().validate([first, second])) == ["duplicate_transaction"]

    def test_dangling_link(self):
        first, second = Account.open("A"), Account.open("B")
        source, _ = transfer_pair(first, second)
        first.transactions.append(source)
        first.recalculate_balance()

        result = LedgerValidator().validate([first, second])

        assert issue_types(result) == ["dangling_link"]
        assert result.issues[0].entity_id == source.id

    def test_asymmetric_transfer(self):
        first, second = Account.open("A"), Account.open("B")
        source, target = transfer_pair(first, second)
        # Both legs claim to be the source
        first.transactions.append(source)
        second.transactions.append(target.model_copy(update={"is_transfer_source": True}))
        first.recalculate_balance()
        second.recalculate_balance()

        assert issue_types(LedgerValidator().validate([first, second])) == ["asymmetric_transfer"]

    def test_transfer_amount_mismatch_reported_once(self):
        first, second = Account.open("A"), Account.open("B")
        source, target = transfer_pair(first, second)
        first.transactions.append(source)
        second.transactions.append(target.model_copy(update={"amount": Decimal("60.00")}))
        first.recalculate_balance()
        second.recalculate_balance()

        assert issue_types(LedgerValidator().validate([first, second])) == ["transfer_mismatch"]

    def test_recurring_payment_for_missing_account(self, checking):
        payment = RecurringPayment(
            name="Rent",
            amount=Decimal("900.00"),
            account_id=uuid4(),
            frequency=Frequency.MONTHLY,
            next_due_date=WHEN,
        )

        result = LedgerValidator().validate([checking], [payment])

        assert issue_types(result) == ["unknown_account"]
        assert result.issues[0].severity == "warning"
