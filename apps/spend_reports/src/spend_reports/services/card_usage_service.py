"""Card usage registration and maintenance use cases."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from spend_reports.db.models.card_usage import CardUsage
from spend_reports.domain.errors import (
    InvalidRequestError,
    UsageNotFoundError,
    compose_error_message,
)
from spend_reports.domain.periods import local_range, resolve_occurred_at
from spend_reports.services.aggregation_service import (
    AggregationService,
    RecordTransactionResult,
    UsageEvent,
)

logger = logging.getLogger(__name__)

MAX_LIST_RANGE_DAYS = 90


class CardUsageRepositoryProtocol(Protocol):
    """Subset of card usage persistence used by this service."""

    async def add(
        self,
        *,
        amount: Decimal,
        occurred_at: datetime,
        where_to_use: str = "",
        card_name: str = "",
    ) -> CardUsage: ...

    async def get(self, usage_id: UUID) -> CardUsage | None: ...

    async def list_between(
        self, start: datetime, end: datetime, *, include_inactive: bool = False
    ) -> list[CardUsage]: ...

    async def update(
        self,
        usage_id: UUID,
        *,
        amount: Decimal | None = None,
        is_active: bool | None = None,
    ) -> CardUsage | None: ...


@dataclass(slots=True, frozen=True)
class CreateCardUsageInput:
    """Input values for registering one card usage."""

    amount: Decimal
    occurred_at: datetime | None = None
    where_to_use: str = ""
    card_name: str = ""


@dataclass(slots=True, frozen=True)
class CardUsageChange:
    """Stored usage plus the report changes it caused."""

    usage: CardUsage
    aggregation: RecordTransactionResult | None


class CardUsageService:
    """Keeps period reports in step with stored card usages."""

    def __init__(
        self,
        *,
        card_usage_repository: CardUsageRepositoryProtocol,
        aggregation_service: AggregationService,
    ) -> None:
        self._card_usage_repository = card_usage_repository
        self._aggregation_service = aggregation_service

    async def register(
        self, data: CreateCardUsageInput, *, updated_by: str = "system"
    ) -> CardUsageChange:
        """Store a usage and fold it into its daily, weekly and monthly reports."""

        if data.amount == 0:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="amount must not be zero.",
                    action="Send a positive amount or a negative refund.",
                )
            )
        usage = await self._card_usage_repository.add(
            amount=data.amount,
            occurred_at=resolve_occurred_at(data.occurred_at),
            where_to_use=data.where_to_use,
            card_name=data.card_name,
        )
        logger.info("card_usage_registered", extra={"path": usage.document_path})
        aggregation = await self._aggregation_service.record_transaction(
            UsageEvent(
                source_id=usage.document_path,
                amount=usage.amount,
                occurred_at=usage.occurred_at,
            ),
            updated_by=updated_by,
        )
        return CardUsageChange(usage=usage, aggregation=aggregation)

    async def get(self, usage_id: UUID) -> CardUsage:
        """Return one usage or raise UsageNotFoundError."""

        usage = await self._card_usage_repository.get(usage_id)
        if usage is None:
            raise UsageNotFoundError(details={"usage_id": str(usage_id)})
        return usage

    async def list_for_range(
        self,
        start_date: date,
        end_date: date,
        *,
        include_inactive: bool = False,
    ) -> list[CardUsage]:
        """List usages whose Tokyo date lies between start_date and end_date."""

        if end_date < start_date:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="end_date is before start_date.",
                    action="Send an end_date on or after start_date.",
                ),
                details={
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
            )
        range_days = (end_date - start_date).days
        if range_days > MAX_LIST_RANGE_DAYS:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=f"Date range spans {range_days} days.",
                    action=f"List at most {MAX_LIST_RANGE_DAYS} days at a time.",
                ),
                details={"range_days": range_days, "max_days": MAX_LIST_RANGE_DAYS},
            )
        start, end = local_range(start_date, end_date)
        return await self._card_usage_repository.list_between(
            start, end, include_inactive=include_inactive
        )

    async def update(
        self,
        usage_id: UUID,
        *,
        amount: Decimal | None = None,
        is_active: bool | None = None,
        updated_by: str = "system",
    ) -> CardUsageChange:
        """Change amount or active state and mirror it in the reports.

        Deactivation removes the usage from its reports, reactivation adds it
        back and an amount change on an active usage shifts the totals.
        """

        if amount is not None and amount == 0:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="amount must not be zero.",
                    action="Deactivate the usage instead of zeroing it.",
                )
            )
        current = await self._card_usage_repository.get(usage_id)
        if current is None:
            raise UsageNotFoundError(details={"usage_id": str(usage_id)})
        previous_amount = current.amount
        previous_active = current.is_active

        usage = await self._card_usage_repository.update(
            usage_id, amount=amount, is_active=is_active
        )
        if usage is None:
            raise UsageNotFoundError(details={"usage_id": str(usage_id)})

        aggregation: RecordTransactionResult | None = None
        if previous_active and not usage.is_active:
            aggregation = await self._aggregation_service.remove_transaction(
                source_id=usage.document_path,
                occurred_at=usage.occurred_at,
                amount=previous_amount,
                updated_by=updated_by,
            )
        elif not previous_active and usage.is_active:
            aggregation = await self._aggregation_service.record_transaction(
                UsageEvent(
                    source_id=usage.document_path,
                    amount=usage.amount,
                    occurred_at=usage.occurred_at,
                ),
                updated_by=updated_by,
            )
        elif usage.is_active and usage.amount != previous_amount:
            aggregation = await self._aggregation_service.apply_amount_change(
                source_id=usage.document_path,
                occurred_at=usage.occurred_at,
                amount_diff=usage.amount - previous_amount,
                updated_by=updated_by,
            )

        logger.info(
            "card_usage_updated",
            extra={
                "path": usage.document_path,
                "is_active": usage.is_active,
                "reports_changed": aggregation is not None,
            },
        )
        return CardUsageChange(usage=usage, aggregation=aggregation)
