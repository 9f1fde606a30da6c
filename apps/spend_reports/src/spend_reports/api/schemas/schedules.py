"""Schemas for scheduled report delivery endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, model_validator

from spend_reports.api.schemas.reports import GranularityName
from spend_reports.services.scheduling_service import (
    ScheduledReportResult,
    ScheduleResult,
)


class RunDailyScheduleRequest(BaseModel):
    """Optional reference date; defaults to today in Tokyo."""

    as_of: date | None = None


class SendReportRequest(BaseModel):
    """Period coordinates of one report to send manually."""

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    day: int | None = Field(default=None, ge=1, le=31)
    term: int | None = Field(default=None, ge=1, le=5)
    as_of: date | None = None

    @model_validator(mode="after")
    def validate_single_coordinate(self) -> SendReportRequest:
        if self.day is not None and self.term is not None:
            raise ValueError("day and term cannot be combined.")
        return self


class ScheduledReportResponse(BaseModel):
    granularity: GranularityName
    path: str
    outcome: str
    message: str | None

    @classmethod
    def from_result(cls, result: ScheduledReportResult) -> ScheduledReportResponse:
        return cls(
            granularity=result.granularity.value,
            path=result.path,
            outcome=result.outcome.value,
            message=result.message,
        )


class ScheduleResponse(BaseModel):
    """Combined result of one scheduler run."""

    as_of: date
    closed_date: date
    status: str
    reports: list[ScheduledReportResponse]

    @classmethod
    def from_result(cls, result: ScheduleResult) -> ScheduleResponse:
        return cls(
            as_of=result.as_of,
            closed_date=result.closed_date,
            status=result.status.value,
            reports=[ScheduledReportResponse.from_result(item) for item in result.reports],
        )
