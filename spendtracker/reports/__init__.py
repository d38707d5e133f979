from spendtracker.reports.executor import ReportExecutor
from spendtracker.reports.insights import SpendingInsightsEngine

__all__ = ["ReportExecutor", "SpendingInsightsEngine"]
