"""Card usage routes."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from spend_reports.api.dependencies import get_card_usage_service
from spend_reports.api.schemas.card_usages import (
    AggregationResponse,
    CardUsageChangeResponse,
    CardUsageListResponse,
    CardUsageResponse,
    CreateCardUsageRequest,
    UpdateCardUsageRequest,
)
from spend_reports.services.card_usage_service import (
    CardUsageChange,
    CardUsageService,
    CreateCardUsageInput,
)

router = APIRouter(prefix="/card-usages", tags=["Card Usages"])


def _to_response(change: CardUsageChange) -> CardUsageChangeResponse:
    return CardUsageChangeResponse(
        usage=CardUsageResponse.from_model(change.usage),
        aggregation=(
            AggregationResponse.from_result(change.aggregation)
            if change.aggregation is not None
            else None
        ),
    )


@router.post(
    "",
    response_model=CardUsageChangeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Invalid card usage"}},
)
async def create_card_usage(
    payload: CreateCardUsageRequest,
    service: Annotated[CardUsageService, Depends(get_card_usage_service)],
) -> CardUsageChangeResponse:
    """Store a card usage and fold it into its period reports."""

    change = await service.register(
        CreateCardUsageInput(
            amount=Decimal(payload.amount),
            occurred_at=payload.occurred_at,
            where_to_use=payload.where_to_use,
            card_name=payload.card_name,
        )
    )
    return _to_response(change)


@router.patch(
    "/{usage_id}",
    response_model=CardUsageChangeResponse,
    responses={
        400: {"description": "Invalid change"},
        404: {"description": "Card usage not found"},
    },
)
async def update_card_usage(
    usage_id: UUID,
    payload: UpdateCardUsageRequest,
    service: Annotated[CardUsageService, Depends(get_card_usage_service)],
) -> CardUsageChangeResponse:
    """Change amount or active state of a card usage."""

    change = await service.update(
        usage_id,
        amount=Decimal(payload.amount) if payload.amount is not None else None,
        is_active=payload.is_active,
    )
    return _to_response(change)


@router.get(
    "",
    response_model=CardUsageListResponse,
    responses={400: {"description": "Invalid date range"}},
)
async def list_card_usages(
    start_date: date,
    end_date: date,
    service: Annotated[CardUsageService, Depends(get_card_usage_service)],
    include_inactive: Annotated[bool, Query()] = False,
) -> CardUsageListResponse:
    """List card usages whose Tokyo date lies in the given range."""

    usages = await service.list_for_range(
        start_date, end_date, include_inactive=include_inactive
    )
    return CardUsageListResponse(
        start_date=start_date,
        end_date=end_date,
        items=[CardUsageResponse.from_model(usage) for usage in usages],
    )


@router.get(
    "/{usage_id}",
    response_model=CardUsageResponse,
    responses={404: {"description": "Card usage not found"}},
)
async def get_card_usage(
    usage_id: UUID,
    service: Annotated[CardUsageService, Depends(get_card_usage_service)],
) -> CardUsageResponse:
    """Return one card usage."""

    return CardUsageResponse.from_model(await service.get(usage_id))
