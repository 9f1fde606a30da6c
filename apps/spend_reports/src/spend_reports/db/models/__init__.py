"""ORM models for the spend_reports domain."""

from spend_reports.db.models.card_usage import CardUsage
from spend_reports.db.models.period_report import PeriodReportRecord

__all__ = [
    "CardUsage",
    "PeriodReportRecord",
]
