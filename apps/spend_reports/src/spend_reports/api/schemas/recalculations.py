"""Schemas for report recalculation endpoint."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from spend_reports.api.schemas.reports import MONEY_PATTERN, GranularityName
from spend_reports.domain.money import format_money
from spend_reports.services.recalculation_service import RecalculationResult


class RecalculationRequestBody(BaseModel):
    """Operator request for rebuilding reports."""

    start_date: date
    end_date: date
    granularities: list[GranularityName] = Field(
        default_factory=lambda: ["daily", "weekly", "monthly"]
    )
    dry_run: bool = False
    executed_by: str = Field(default="api", min_length=1, max_length=120)


class PeriodProjectionResponse(BaseModel):
    granularity: GranularityName
    path: str
    count: int
    total_amount: str = Field(pattern=MONEY_PATTERN)


class RecalculationErrorResponse(BaseModel):
    document_path: str
    message: str
    details: dict[str, Any]


class RecalculationResponse(BaseModel):
    """Statistics of one recalculation run."""

    status: str
    success: bool
    dry_run: bool
    executed_by: str
    start_date: date
    end_date: date
    started_at: datetime
    finished_at: datetime
    total_found: int
    total_processed: int
    reports_created: dict[str, int]
    reports_updated: dict[str, int]
    usages_skipped: dict[str, int]
    expected_reports: dict[str, int]
    projections: list[PeriodProjectionResponse]
    errors: list[RecalculationErrorResponse]

    @classmethod
    def from_result(cls, result: RecalculationResult) -> RecalculationResponse:
        return cls(
            status=result.status.value,
            success=result.success,
            dry_run=result.dry_run,
            executed_by=result.executed_by,
            start_date=result.start_date,
            end_date=result.end_date,
            started_at=result.started_at,
            finished_at=result.finished_at,
            total_found=result.total_found,
            total_processed=result.total_processed,
            reports_created={k.value: v for k, v in result.reports_created.items()},
            reports_updated={k.value: v for k, v in result.reports_updated.items()},
            usages_skipped={k.value: v for k, v in result.usages_skipped.items()},
            expected_reports={k.value: v for k, v in result.expected_reports.items()},
            projections=[
                PeriodProjectionResponse(
                    granularity=item.granularity.value,
                    path=item.path,
                    count=item.count,
                    total_amount=format_money(item.total_amount),
                )
                for item in result.projections
            ],
            errors=[
                RecalculationErrorResponse(
                    document_path=item.document_path,
                    message=item.message,
                    details=item.details,
                )
                for item in result.errors
            ],
        )
