"""Period report routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from spend_reports.api.dependencies import get_report_store
from spend_reports.api.schemas.reports import (
    GranularityName,
    PeriodReportListResponse,
    PeriodReportResponse,
)
from spend_reports.domain.errors import ReportNotFoundError, compose_error_message
from spend_reports.domain.periods import (
    Granularity,
    PeriodKey,
    daily_key,
    monthly_key,
    weekly_key,
)
from spend_reports.repositories.period_report_repository import (
    PeriodReportRepository,
)

router = APIRouter(prefix="/reports", tags=["Reports"])
monthly_listing_router = APIRouter(prefix="/months", tags=["Reports"])

Year = Annotated[int, Path(ge=2000, le=2100)]
Month = Annotated[int, Path(ge=1, le=12)]


async def _load(store: PeriodReportRepository, key: PeriodKey) -> PeriodReportResponse:
    report = await store.get(key)
    if report is None:
        raise ReportNotFoundError(
            message=compose_error_message(
                cause=f"No report exists at {key.path}.",
                action="Check the period values or record a card usage first.",
            ),
            details={"path": key.path},
        )
    return PeriodReportResponse.from_report(report)


@router.get(
    "/daily/{year}/{month}/{day}",
    response_model=PeriodReportResponse,
    responses={404: {"description": "Report not found"}},
)
async def get_daily_report(
    year: Year,
    month: Month,
    day: Annotated[int, Path(ge=1, le=31)],
    store: Annotated[PeriodReportRepository, Depends(get_report_store)],
) -> PeriodReportResponse:
    """Return one daily report."""

    return await _load(store, daily_key(year, month, day))


@router.get(
    "/weekly/{year}/{month}/{term}",
    response_model=PeriodReportResponse,
    responses={404: {"description": "Report not found"}},
)
async def get_weekly_report(
    year: Year,
    month: Month,
    term: Annotated[int, Path(ge=1, le=5)],
    store: Annotated[PeriodReportRepository, Depends(get_report_store)],
) -> PeriodReportResponse:
    """Return one weekly report."""

    return await _load(store, weekly_key(year, month, term))


@router.get(
    "/monthly/{year}/{month}",
    response_model=PeriodReportResponse,
    responses={404: {"description": "Report not found"}},
)
async def get_monthly_report(
    year: Year,
    month: Month,
    store: Annotated[PeriodReportRepository, Depends(get_report_store)],
) -> PeriodReportResponse:
    """Return one monthly report."""

    return await _load(store, monthly_key(year, month))


@monthly_listing_router.get(
    "/{year}/{month}/reports/{granularity}",
    response_model=PeriodReportListResponse,
)
async def list_month_reports(
    year: Year,
    month: Month,
    granularity: GranularityName,
    store: Annotated[PeriodReportRepository, Depends(get_report_store)],
) -> PeriodReportListResponse:
    """List reports of one granularity stored for a month."""

    reports = await store.list_for_month(Granularity(granularity), year, month)
    return PeriodReportListResponse(
        granularity=granularity,
        year=year,
        month=month,
        reports=[PeriodReportResponse.from_report(item) for item in reports],
    )
