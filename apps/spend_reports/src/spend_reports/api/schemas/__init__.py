"""API request and response schemas."""

from spend_reports.api.schemas.card_usages import (
    CardUsageChangeResponse,
    CardUsageListResponse,
    CreateCardUsageRequest,
    UpdateCardUsageRequest,
)
from spend_reports.api.schemas.recalculations import (
    RecalculationRequestBody,
    RecalculationResponse,
)
from spend_reports.api.schemas.reports import (
    PeriodReportListResponse,
    PeriodReportResponse,
)
from spend_reports.api.schemas.schedules import (
    RunDailyScheduleRequest,
    ScheduleResponse,
    SendReportRequest,
)

__all__ = [
    "CardUsageChangeResponse",
    "CardUsageListResponse",
    "CreateCardUsageRequest",
    "PeriodReportListResponse",
    "PeriodReportResponse",
    "RecalculationRequestBody",
    "RecalculationResponse",
    "RunDailyScheduleRequest",
    "ScheduleResponse",
    "SendReportRequest",
    "UpdateCardUsageRequest",
]
