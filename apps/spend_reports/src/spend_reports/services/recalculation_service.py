"""Replay of stored card usages to rebuild period reports."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from spend_reports.application.ports.notifications import Notifier
from spend_reports.application.ports.repositories import UsageRecord, UsageSource
from spend_reports.domain.errors import InvalidRequestError, compose_error_message
from spend_reports.domain.periods import (
    ALL_GRANULARITIES,
    Granularity,
    local_range,
    resolve_period,
)
from spend_reports.domain.reports import OperationStatus
from spend_reports.services.aggregation_service import (
    AggregationOutcome,
    AggregationService,
    UsageEvent,
    normalize_granularities,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_PAUSE_SECONDS = 0.1
DEFAULT_MAX_RANGE_DAYS = 90
MAX_ERROR_RATIO = Decimal("0.1")


@dataclass(slots=True, frozen=True)
class RecalculationRequest:
    """Operator request to rebuild reports for a date range."""

    start_date: date
    end_date: date
    granularities: Sequence[Granularity | str] = ALL_GRANULARITIES
    dry_run: bool = False
    executed_by: str = "system"


@dataclass(slots=True, frozen=True)
class RecalculationError:
    """Failure of one replayed usage."""

    document_path: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PeriodProjection:
    """Expected contents of one report as computed by a dry run."""

    granularity: Granularity
    path: str
    count: int
    total_amount: Decimal


@dataclass(slots=True, frozen=True)
class RecalculationResult:
    """Statistics of one recalculation run."""

    start_date: date
    end_date: date
    granularities: tuple[Granularity, ...]
    dry_run: bool
    executed_by: str
    started_at: datetime
    finished_at: datetime
    total_found: int
    total_processed: int
    reports_created: dict[Granularity, int]
    reports_updated: dict[Granularity, int]
    usages_skipped: dict[Granularity, int]
    projections: list[PeriodProjection]
    errors: list[RecalculationError]
    success: bool

    @property
    def status(self) -> OperationStatus:
        if not self.errors:
            return OperationStatus.SUCCESS
        if self.success:
            return OperationStatus.PARTIAL
        return OperationStatus.FAILED

    @property
    def expected_reports(self) -> dict[Granularity, int]:
        counts = {granularity: 0 for granularity in self.granularities}
        for projection in self.projections:
            counts[projection.granularity] += 1
        return counts


def is_within_error_budget(error_count: int, total: int) -> bool:
    """Return True when errors are absent or below ten percent of total."""

    if error_count == 0:
        return True
    return Decimal(error_count) < MAX_ERROR_RATIO * Decimal(total)


def project_reports(
    records: Sequence[UsageRecord], granularities: Sequence[Granularity]
) -> list[PeriodProjection]:
    """Group usages by period key the same way a live replay folds them."""

    grouped: dict[tuple[Granularity, str], dict[str, Decimal]] = {}
    for record in records:
        period = resolve_period(record.occurred_at)
        for granularity in granularities:
            key = period.key_for(granularity)
            bucket = grouped.setdefault((granularity, key.path), {})
            bucket.setdefault(record.document_path, record.amount)

    return [
        PeriodProjection(
            granularity=granularity,
            path=path,
            count=len(amounts),
            total_amount=sum(amounts.values(), Decimal("0")),
        )
        for (granularity, path), amounts in sorted(grouped.items())
    ]


class RecalculationService:
    """Rebuilds reports by replaying usages through the aggregation path."""

    def __init__(
        self,
        *,
        usage_source: UsageSource,
        aggregation_service: AggregationService,
        notifier: Notifier,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
        max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero.")
        if not 0 < max_range_days <= DEFAULT_MAX_RANGE_DAYS:
            raise ValueError(
                f"max_range_days must be between 1 and {DEFAULT_MAX_RANGE_DAYS}."
            )
        self._usage_source = usage_source
        self._aggregation_service = aggregation_service
        self._notifier = notifier
        self._batch_size = batch_size
        self._pause_seconds = pause_seconds
        self._max_range_days = max_range_days

    def validate(self, request: RecalculationRequest) -> tuple[Granularity, ...]:
        """Reject invalid ranges and granularity lists before any I/O."""

        if request.end_date < request.start_date:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause="end_date is before start_date.",
                    action="Send an end_date on or after start_date.",
                ),
                details={
                    "start_date": request.start_date.isoformat(),
                    "end_date": request.end_date.isoformat(),
                },
            )
        range_days = (request.end_date - request.start_date).days
        if range_days > self._max_range_days:
            raise InvalidRequestError(
                message=compose_error_message(
                    cause=(
                        f"Date range spans {range_days} days, above the limit of "
                        f"{self._max_range_days} days."
                    ),
                    action="Split the recalculation into smaller ranges.",
                ),
                details={"range_days": range_days, "max_days": self._max_range_days},
            )
        return normalize_granularities(request.granularities)

    async def recalculate(self, request: RecalculationRequest) -> RecalculationResult:
        """Replay usages between start_date and end_date inclusive."""

        granularities = self.validate(request)
        started_at = datetime.now(tz=UTC)
        created: dict[Granularity, set[str]] = {g: set() for g in granularities}
        updated: dict[Granularity, set[str]] = {g: set() for g in granularities}
        skipped = {granularity: 0 for granularity in granularities}
        errors: list[RecalculationError] = []

        logger.info(
            "recalculation_started",
            extra={
                "start_date": request.start_date.isoformat(),
                "end_date": request.end_date.isoformat(),
                "dry_run": request.dry_run,
                "executed_by": request.executed_by,
            },
        )

        start, end = local_range(request.start_date, request.end_date)
        try:
            records = await self._usage_source.query_by_date_range(start, end)
        except Exception as exc:
            logger.exception("recalculation_query_failed")
            await self._report_error(exc, context="recalculation query")
            errors.append(
                RecalculationError(
                    document_path="card_usages",
                    message=str(exc) or type(exc).__name__,
                    details={"stage": "query"},
                )
            )
            return self._build_result(
                request=request,
                granularities=granularities,
                started_at=started_at,
                total_found=0,
                total_processed=0,
                created=created,
                updated=updated,
                skipped=skipped,
                projections=[],
                errors=errors,
                success=False,
            )

        projections = project_reports(records, granularities)
        if request.dry_run:
            logger.info(
                "recalculation_dry_run_finished",
                extra={"total_found": len(records), "reports": len(projections)},
            )
            return self._build_result(
                request=request,
                granularities=granularities,
                started_at=started_at,
                total_found=len(records),
                total_processed=0,
                created=created,
                updated=updated,
                skipped=skipped,
                projections=projections,
                errors=errors,
                success=True,
            )

        processed = 0
        for batch_start in range(0, len(records), self._batch_size):
            if batch_start > 0 and self._pause_seconds > 0:
                await asyncio.sleep(self._pause_seconds)

            batch = records[batch_start : batch_start + self._batch_size]
            for record in batch:
                processed += 1
                error = await self._replay(
                    record,
                    granularities=granularities,
                    executed_by=request.executed_by,
                    created=created,
                    updated=updated,
                    skipped=skipped,
                )
                if error is not None:
                    errors.append(error)

            logger.info(
                "recalculation_batch_finished",
                extra={"processed": processed, "total": len(records)},
            )

        success = is_within_error_budget(len(errors), len(records))
        result = self._build_result(
            request=request,
            granularities=granularities,
            started_at=started_at,
            total_found=len(records),
            total_processed=processed,
            created=created,
            updated=updated,
            skipped=skipped,
            projections=projections,
            errors=errors,
            success=success,
        )
        log = logger.info if success else logger.warning
        log(
            "recalculation_finished",
            extra={
                "status": str(result.status),
                "processed": processed,
                "errors": len(errors),
            },
        )
        return result

    async def _replay(
        self,
        record: UsageRecord,
        *,
        granularities: tuple[Granularity, ...],
        executed_by: str,
        created: dict[Granularity, set[str]],
        updated: dict[Granularity, set[str]],
        skipped: dict[Granularity, int],
    ) -> RecalculationError | None:
        try:
            outcome = await self._aggregation_service.record_transaction(
                UsageEvent(
                    source_id=record.document_path,
                    amount=record.amount,
                    occurred_at=record.occurred_at,
                ),
                granularities=granularities,
                updated_by=executed_by,
            )
        except Exception as exc:
            logger.warning(
                "recalculation_usage_failed",
                extra={"document_path": record.document_path},
            )
            return RecalculationError(
                document_path=record.document_path,
                message=str(exc) or type(exc).__name__,
                details={"error_type": type(exc).__name__},
            )

        for granularity, item in outcome.results.items():
            if item.outcome == AggregationOutcome.CREATED:
                created[granularity].add(item.path)
            elif item.outcome == AggregationOutcome.UPDATED:
                updated[granularity].add(item.path)
            elif item.outcome == AggregationOutcome.SKIPPED:
                skipped[granularity] += 1

        if not outcome.errors:
            return None
        return RecalculationError(
            document_path=record.document_path,
            message="; ".join(error.message for error in outcome.errors),
            details={
                "failures": [
                    {
                        "granularity": str(error.granularity),
                        "path": error.path,
                        "code": error.code,
                    }
                    for error in outcome.errors
                ]
            },
        )

    def _build_result(
        self,
        *,
        request: RecalculationRequest,
        granularities: tuple[Granularity, ...],
        started_at: datetime,
        total_found: int,
        total_processed: int,
        created: dict[Granularity, set[str]],
        updated: dict[Granularity, set[str]],
        skipped: dict[Granularity, int],
        projections: list[PeriodProjection],
        errors: list[RecalculationError],
        success: bool,
    ) -> RecalculationResult:
        return RecalculationResult(
            start_date=request.start_date,
            end_date=request.end_date,
            granularities=granularities,
            dry_run=request.dry_run,
            executed_by=request.executed_by,
            started_at=started_at,
            finished_at=datetime.now(tz=UTC),
            total_found=total_found,
            total_processed=total_processed,
            reports_created={g: len(paths) for g, paths in created.items()},
            reports_updated={
                g: len(paths - created[g]) for g, paths in updated.items()
            },
            usages_skipped=dict(skipped),
            projections=projections,
            errors=errors,
            success=success,
        )

    async def _report_error(self, error: Exception, *, context: str) -> None:
        try:
            await self._notifier.notify_error(error, context)
        except Exception:
            logger.exception("error_notification_failed", extra={"context": context})
