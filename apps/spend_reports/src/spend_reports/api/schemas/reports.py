"""Schemas for period report responses."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from spend_reports.domain.money import format_money
from spend_reports.domain.reports import PeriodReport

GranularityName = Literal["daily", "weekly", "monthly"]
MONEY_PATTERN = r"^-?[0-9]+$"


class PeriodReportResponse(BaseModel):
    """Serialized period report."""

    path: str
    granularity: GranularityName
    year: int
    month: int
    day: int | None
    term: int | None
    period_start: date
    period_end: date
    total_amount: str = Field(pattern=MONEY_PATTERN)
    total_count: int = Field(ge=0)
    document_ids: list[str]
    has_notified: bool
    has_notified_level1: bool
    has_notified_level2: bool
    has_notified_level3: bool
    has_report_sent: bool
    last_updated_at: datetime | None
    last_updated_by: str
    version: int

    @classmethod
    def from_report(cls, report: PeriodReport) -> PeriodReportResponse:
        key = report.key
        return cls(
            path=key.path,
            granularity=key.granularity.value,
            year=key.year,
            month=key.month,
            day=key.day,
            term=key.term,
            period_start=report.period_start,
            period_end=report.period_end,
            total_amount=format_money(report.total_amount),
            total_count=report.total_count,
            document_ids=list(report.document_ids),
            has_notified=report.has_notified,
            has_notified_level1=report.has_notified_level1,
            has_notified_level2=report.has_notified_level2,
            has_notified_level3=report.has_notified_level3,
            has_report_sent=report.has_report_sent,
            last_updated_at=report.last_updated_at,
            last_updated_by=report.last_updated_by,
            version=report.version,
        )


class PeriodReportListResponse(BaseModel):
    """Reports of one granularity inside a month."""

    granularity: GranularityName
    year: int
    month: int
    reports: list[PeriodReportResponse]
