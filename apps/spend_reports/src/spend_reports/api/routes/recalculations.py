"""Report recalculation routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from spend_reports.api.dependencies import get_recalculation_service
from spend_reports.api.schemas.recalculations import (
    RecalculationRequestBody,
    RecalculationResponse,
)
from spend_reports.services.recalculation_service import (
    RecalculationRequest,
    RecalculationService,
)

router = APIRouter(prefix="/recalculations", tags=["Recalculations"])


@router.post(
    "",
    response_model=RecalculationResponse,
    responses={400: {"description": "Invalid date range or granularities"}},
)
async def recalculate_reports(
    payload: RecalculationRequestBody,
    service: Annotated[RecalculationService, Depends(get_recalculation_service)],
) -> RecalculationResponse:
    """Rebuild or project reports for a date range."""

    result = await service.recalculate(
        RecalculationRequest(
            start_date=payload.start_date,
            end_date=payload.end_date,
            granularities=tuple(payload.granularities),
            dry_run=payload.dry_run,
            executed_by=payload.executed_by,
        )
    )
    return RecalculationResponse.from_result(result)
