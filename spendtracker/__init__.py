"""
SpendTracker - the bookkeeping core of a personal finance tracker.

Accounts and their transactions, transfers between accounts, recurring
payments that post themselves when due, a category catalog, and
spending reports, persisted through swappable storage backends.
"""

__version__ = "1.0.0"
