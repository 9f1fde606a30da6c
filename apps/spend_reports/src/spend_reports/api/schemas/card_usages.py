"""Schemas for card usage endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from spend_reports.api.schemas.reports import (
    MONEY_PATTERN,
    GranularityName,
    PeriodReportResponse,
)
from spend_reports.db.models.card_usage import CardUsage
from spend_reports.domain.money import format_money
from spend_reports.services.aggregation_service import RecordTransactionResult


class CreateCardUsageRequest(BaseModel):
    """Payload for registering one card usage."""

    amount: str = Field(pattern=MONEY_PATTERN)
    occurred_at: datetime | None = None
    where_to_use: str = Field(default="", max_length=200)
    card_name: str = Field(default="", max_length=120)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, value: str) -> str:
        if Decimal(value) == 0:
            raise ValueError("Amount must not be zero.")
        return value

    @field_validator("where_to_use", "card_name")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


class UpdateCardUsageRequest(BaseModel):
    """Partial update of amount and/or active state."""

    amount: str | None = Field(default=None, pattern=MONEY_PATTERN)
    is_active: bool | None = None

    @model_validator(mode="after")
    def validate_has_changes(self) -> UpdateCardUsageRequest:
        if self.amount is None and self.is_active is None:
            raise ValueError("Provide amount or is_active.")
        if self.amount is not None and Decimal(self.amount) == 0:
            raise ValueError("Amount must not be zero.")
        return self


class CardUsageResponse(BaseModel):
    """Serialized card usage."""

    id: UUID
    document_path: str
    amount: str = Field(pattern=MONEY_PATTERN)
    occurred_at: datetime
    where_to_use: str
    card_name: str
    is_active: bool

    @classmethod
    def from_model(cls, usage: CardUsage) -> CardUsageResponse:
        return cls(
            id=usage.id,
            document_path=usage.document_path,
            amount=format_money(usage.amount),
            occurred_at=usage.occurred_at,
            where_to_use=usage.where_to_use,
            card_name=usage.card_name,
            is_active=usage.is_active,
        )


class GranularityResultResponse(BaseModel):
    """Result of one granularity for one usage."""

    granularity: GranularityName
    path: str
    outcome: str
    alerted_levels: list[int]
    alert_error: str | None
    report: PeriodReportResponse | None


class AggregationErrorResponse(BaseModel):
    granularity: GranularityName
    path: str
    code: str
    message: str


class AggregationResponse(BaseModel):
    """Per-granularity aggregation outcome."""

    status: str
    results: list[GranularityResultResponse]
    errors: list[AggregationErrorResponse]

    @classmethod
    def from_result(cls, result: RecordTransactionResult) -> AggregationResponse:
        return cls(
            status=result.status.value,
            results=[
                GranularityResultResponse(
                    granularity=item.granularity.value,
                    path=item.path,
                    outcome=item.outcome.value,
                    alerted_levels=list(item.alerted_levels),
                    alert_error=item.alert_error,
                    report=(
                        PeriodReportResponse.from_report(item.report)
                        if item.report is not None
                        else None
                    ),
                )
                for item in result.results.values()
            ],
            errors=[
                AggregationErrorResponse(
                    granularity=error.granularity.value,
                    path=error.path,
                    code=error.code,
                    message=error.message,
                )
                for error in result.errors
            ],
        )


class CardUsageChangeResponse(BaseModel):
    """Stored usage together with the resulting report changes."""

    usage: CardUsageResponse
    aggregation: AggregationResponse | None


class CardUsageListResponse(BaseModel):
    """Card usages recorded between two Tokyo dates."""

    start_date: date
    end_date: date
    items: list[CardUsageResponse]
