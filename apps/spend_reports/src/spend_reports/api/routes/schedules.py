"""Scheduled and manual report delivery routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from spend_reports.api.dependencies import get_scheduling_service
from spend_reports.api.schemas.reports import GranularityName
from spend_reports.api.schemas.schedules import (
    RunDailyScheduleRequest,
    ScheduledReportResponse,
    ScheduleResponse,
    SendReportRequest,
)
from spend_reports.domain.errors import InvalidRequestError, compose_error_message
from spend_reports.domain.periods import (
    PeriodKey,
    daily_key,
    monthly_key,
    weekly_key,
)
from spend_reports.services.scheduling_service import SchedulingService

router = APIRouter(tags=["Schedules"])


def _key_from_request(granularity: GranularityName, payload: SendReportRequest) -> PeriodKey:
    if granularity == "daily":
        if payload.day is None:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="day is required for daily reports.",
                    action="Send year, month and day.",
                )
            )
        return daily_key(payload.year, payload.month, payload.day)
    if granularity == "weekly":
        if payload.term is None:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="term is required for weekly reports.",
                    action="Send year, month and term.",
                )
            )
        return weekly_key(payload.year, payload.month, payload.term)
    return monthly_key(payload.year, payload.month)


@router.post("/schedules/daily", response_model=ScheduleResponse)
async def run_daily_schedule(
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
    payload: RunDailyScheduleRequest | None = None,
) -> ScheduleResponse:
    """Send summaries of the periods that closed yesterday."""

    as_of = payload.as_of if payload is not None else None
    result = await service.run_daily_schedule(as_of)
    return ScheduleResponse.from_result(result)


@router.post(
    "/reports/{granularity}/send",
    response_model=ScheduledReportResponse,
    responses={400: {"description": "Invalid period"}},
)
async def send_report(
    granularity: GranularityName,
    payload: SendReportRequest,
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
) -> ScheduledReportResponse:
    """Send one closed period's summary unless already sent."""

    key = _key_from_request(granularity, payload)
    result = await service.send_report(key, as_of=payload.as_of)
    return ScheduledReportResponse.from_result(result)
