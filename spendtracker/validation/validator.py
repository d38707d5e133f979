"""
Ledger Integrity Validation

DESIGN DECISION: The validator checks state that is already loaded,
rather than individual records, because the invariants worth checking
span records:
- An account's balance against its transactions
- A transaction against the account that holds it
- One transfer leg against the other
- A recurring payment against the account it posts to

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the caller decides what to do.
Balances are the exception only in that Account recomputes them on
construction, so a stored balance that disagrees with the
transactions never survives a load.
"""

from typing import Iterable, Optional
from uuid import UUID

from spendtracker.models.ledger import (
    Account,
    RecurringPayment,
    Transaction,
    ValidationIssue,
    ValidationResult,
    ZERO,
)


class LedgerValidator:
    """
    Checks accounts and recurring payments for broken invariants.

    Findings:
    - balance_mismatch (warning)
    - owner_mismatch (error)
    - duplicate_transaction (error)
    - dangling_link (error)
    - asymmetric_transfer (error)
    - transfer_mismatch (error)
    - unknown_account (warning, recurring payments)
    """

    def validate(
        self,
        accounts: Iterable[Account],
        recurring_payments: Iterable[RecurringPayment] = (),
    ) -> ValidationResult:
        accounts = list(accounts)
        issues: list[ValidationIssue] = []

        owners: dict[UUID, Account] = {}
        transactions: dict[UUID, Transaction] = {}
        transaction_count = 0

        for account in accounts:
            issues.extend(self._check_balance(account))
            for transaction in account.transactions:
                transaction_count += 1
                if transaction.account_id != account.id:
                    issues.append(ValidationIssue(
                        entity_type="transaction",
                        entity_id=transaction.id,
                        issue_type="owner_mismatch",
                        message=(
                            f"Transaction is held by account '{account.name}' "
                            f"but names account {transaction.account_id}"
                        ),
                        severity="error",
                        suggested_fix="Move the transaction or correct its account_id",
                    ))
                if transaction.id in transactions:
                    issues.append(ValidationIssue(
                        entity_type="transaction",
                        entity_id=transaction.id,
                        issue_type="duplicate_transaction",
                        message="Transaction ID is recorded more than once",
                        severity="error",
                        suggested_fix="Delete one of the copies",
                    ))
                    continue
                owners[transaction.id] = account
                transactions[transaction.id] = transaction

        checked_pairs: set[frozenset] = set()
        for transaction in transactions.values():
            if transaction.is_transfer:
                issues.extend(self._check_transfer(transaction, owners, transactions, checked_pairs))

        account_ids = {a.id for a in accounts}
        for payment in recurring_payments:
            if payment.account_id not in account_ids:
                issues.append(ValidationIssue(
                    entity_type="recurring_payment",
                    entity_id=payment.id,
                    issue_type="unknown_account",
                    message=f"Recurring payment '{payment.name}' posts to a missing account",
                    severity="warning",
                    suggested_fix="Point the payment at an existing account or delete it",
                ))

        return ValidationResult(
            accounts_checked=len(accounts),
            transactions_checked=transaction_count,
            issues=issues,
        )

    def _check_balance(self, account: Account) -> list[ValidationIssue]:
        expected = account.starting_balance + sum(
            (t.signed_amount for t in account.transactions),
            ZERO,
        )
        if account.current_balance == expected:
            return []
        return [ValidationIssue(
            entity_type="account",
            entity_id=account.id,
            issue_type="balance_mismatch",
            message=(
                f"Account '{account.name}' shows {account.current_balance} "
                f"but its transactions add up to {expected}"
            ),
            severity="warning",
            suggested_fix="Recalculate the balance",
        )]

    def _check_transfer(
        self,
        leg: Transaction,
        owners: dict[UUID, Account],
        transactions: dict[UUID, Transaction],
        checked_pairs: set[frozenset],
    ) -> list[ValidationIssue]:
        linked: Optional[Transaction] = transactions.get(leg.linked_transaction_id)
        if linked is None:
            return [ValidationIssue(
                entity_type="transaction",
                entity_id=leg.id,
                issue_type="dangling_link",
                message=f"Transfer leg points at missing transaction {leg.linked_transaction_id}",
                severity="error",
                suggested_fix="Delete the remaining leg and recreate the transfer",
            )]

        pair = frozenset((leg.id, linked.id))
        if pair in checked_pairs:
            return []
        checked_pairs.add(pair)

        symmetric = (
            linked.is_transfer
            and linked.linked_transaction_id == leg.id
            and leg.target_account_id == owners[linked.id].id
            and linked.target_account_id == owners[leg.id].id
            and leg.is_transfer_source != linked.is_transfer_source
        )
        if not symmetric:
            return [ValidationIssue(
                entity_type="transaction",
                entity_id=leg.id,
                issue_type="asymmetric_transfer",
                message=f"Transfer legs {leg.id} and {linked.id} do not mirror each other",
                severity="error",
                suggested_fix="Delete both legs and recreate the transfer",
            )]

        if leg.amount != linked.amount or leg.date != linked.date:
            return [ValidationIssue(
                entity_type="transaction",
                entity_id=leg.id,
                issue_type="transfer_mismatch",
                message=f"Transfer legs {leg.id} and {linked.id} disagree on amount or date",
                severity="error",
                suggested_fix="Delete both legs and recreate the transfer",
            )]

        return []
