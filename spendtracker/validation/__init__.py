from spendtracker.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
