"""Aggregation of card usages into daily, weekly and monthly reports."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal

from spend_reports.application.ports.notifications import Notifier, ReportNotification
from spend_reports.application.ports.repositories import ReportStore
from spend_reports.domain.errors import (
    ConcurrentUpdateError,
    DomainError,
    InvalidRequestError,
    NotificationDeliveryError,
    compose_error_message,
)
from spend_reports.domain.periods import (
    ALL_GRANULARITIES,
    Granularity,
    PeriodKey,
    resolve_period,
)
from spend_reports.domain.reports import (
    OperationStatus,
    PeriodReport,
    level_flag_fields,
)
from spend_reports.domain.thresholds import ReportThresholds
from spend_reports.reporting.report_notifications import ReportNotificationBuilder

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5

ReportMutation = Callable[[PeriodReport], PeriodReport | None]


class AggregationOutcome(enum.StrEnum):
    """What happened to one granularity's report."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class UsageEvent:
    """One card usage to be folded into the period reports."""

    source_id: str
    amount: Decimal
    occurred_at: datetime


@dataclass(slots=True, frozen=True)
class GranularityError:
    """Failure of one granularity while processing an event."""

    granularity: Granularity
    path: str
    code: str
    message: str


@dataclass(slots=True, frozen=True)
class GranularityResult:
    """Outcome of one granularity for one event."""

    granularity: Granularity
    path: str
    outcome: AggregationOutcome
    report: PeriodReport | None = None
    alerted_levels: tuple[int, ...] = ()
    alert_error: str | None = None


@dataclass(slots=True, frozen=True)
class RecordTransactionResult:
    """Per-granularity results of one aggregation call."""

    source_id: str
    results: dict[Granularity, GranularityResult]
    errors: list[GranularityError] = field(default_factory=list)

    @property
    def daily(self) -> PeriodReport | None:
        return self._report(Granularity.DAILY)

    @property
    def weekly(self) -> PeriodReport | None:
        return self._report(Granularity.WEEKLY)

    @property
    def monthly(self) -> PeriodReport | None:
        return self._report(Granularity.MONTHLY)

    @property
    def status(self) -> OperationStatus:
        if self.results and len(self.errors) >= len(self.results):
            return OperationStatus.FAILED
        if self.errors or any(item.alert_error for item in self.results.values()):
            return OperationStatus.PARTIAL
        return OperationStatus.SUCCESS

    def _report(self, granularity: Granularity) -> PeriodReport | None:
        result = self.results.get(granularity)
        return result.report if result is not None else None


def normalize_granularities(
    granularities: Sequence[Granularity | str] | None,
) -> tuple[Granularity, ...]:
    """Validate a requested granularity list and return it in canonical order."""

    if granularities is None:
        return ALL_GRANULARITIES
    if not granularities:
        raise InvalidRequestError(
            message=compose_error_message(
                cause="granularities must not be empty.",
                action="Request at least one of daily, weekly or monthly.",
            )
        )
    try:
        parsed = [Granularity(item) for item in granularities]
    except ValueError as exc:
        raise InvalidRequestError(
            message=compose_error_message(
                cause=f"Unknown granularity in {list(granularities)}.",
                action="Use only daily, weekly or monthly.",
            ),
            details={"granularities": [str(item) for item in granularities]},
        ) from exc
    if len(set(parsed)) != len(parsed):
        raise InvalidRequestError(
            message=compose_error_message(
                cause="granularities contains duplicated values.",
                action="List each granularity at most once.",
            ),
            details={"granularities": [str(item) for item in parsed]},
        )
    return tuple(item for item in ALL_GRANULARITIES if item in parsed)


class AggregationService:
    """Folds card usages into period reports and raises threshold alerts."""

    def __init__(
        self,
        *,
        report_store: ReportStore,
        notifier: Notifier,
        thresholds: ReportThresholds,
        message_builder: ReportNotificationBuilder | None = None,
    ) -> None:
        self._report_store = report_store
        self._notifier = notifier
        self._thresholds = thresholds
        self._message_builder = message_builder or ReportNotificationBuilder()

    async def record_transaction(
        self,
        event: UsageEvent,
        *,
        granularities: Sequence[Granularity | str] | None = None,
        updated_by: str = "system",
    ) -> RecordTransactionResult:
        """Add one usage to every requested period report.

        A usage whose id is already listed in a report is skipped for that
        report, so replaying the same usage leaves totals unchanged.
        """

        _validate_event(event)
        now = datetime.now(tz=UTC)

        def mutation(report: PeriodReport) -> PeriodReport | None:
            if report.contains(event.source_id):
                return None
            return report.fold(
                document_id=event.source_id,
                amount=event.amount,
                updated_by=updated_by,
                updated_at=now,
            )

        return await self._process(
            source_id=event.source_id,
            occurred_at=event.occurred_at,
            granularities=normalize_granularities(granularities),
            mutation=mutation,
            evaluate_thresholds=True,
        )

    async def apply_amount_change(
        self,
        *,
        source_id: str,
        occurred_at: datetime,
        amount_diff: Decimal,
        updated_by: str = "system",
    ) -> RecordTransactionResult:
        """Shift the totals of every report that already lists source_id."""

        now = datetime.now(tz=UTC)

        def mutation(report: PeriodReport) -> PeriodReport | None:
            if amount_diff == 0 or not report.contains(source_id):
                return None
            return report.adjust(
                amount_diff=amount_diff, updated_by=updated_by, updated_at=now
            )

        return await self._process(
            source_id=source_id,
            occurred_at=occurred_at,
            granularities=ALL_GRANULARITIES,
            mutation=mutation,
            evaluate_thresholds=amount_diff > 0,
        )

    async def remove_transaction(
        self,
        *,
        source_id: str,
        occurred_at: datetime,
        amount: Decimal,
        updated_by: str = "system",
    ) -> RecordTransactionResult:
        """Take a usage out of every report that lists it.

        Alert flags stay set even when the total drops below a threshold.
        """

        now = datetime.now(tz=UTC)

        def mutation(report: PeriodReport) -> PeriodReport | None:
            if not report.contains(source_id):
                return None
            return report.unfold(
                document_id=source_id,
                amount=amount,
                updated_by=updated_by,
                updated_at=now,
            )

        return await self._process(
            source_id=source_id,
            occurred_at=occurred_at,
            granularities=ALL_GRANULARITIES,
            mutation=mutation,
            evaluate_thresholds=False,
        )

    async def _process(
        self,
        *,
        source_id: str,
        occurred_at: datetime,
        granularities: tuple[Granularity, ...],
        mutation: ReportMutation,
        evaluate_thresholds: bool,
    ) -> RecordTransactionResult:
        period = resolve_period(occurred_at)
        results: dict[Granularity, GranularityResult] = {}
        errors: list[GranularityError] = []

        for granularity in granularities:
            key = period.key_for(granularity)
            try:
                result = await self._process_granularity(
                    key=key,
                    mutation=mutation,
                    evaluate_thresholds=evaluate_thresholds,
                )
            except Exception as exc:
                logger.exception(
                    "report_aggregation_failed",
                    extra={"path": key.path, "source_id": source_id},
                )
                errors.append(
                    GranularityError(
                        granularity=granularity,
                        path=key.path,
                        code=_error_code(exc),
                        message=str(exc) or type(exc).__name__,
                    )
                )
                result = GranularityResult(
                    granularity=granularity,
                    path=key.path,
                    outcome=AggregationOutcome.FAILED,
                )
                await self._report_error(
                    exc, context=f"aggregation {key.path} source={source_id}"
                )
            results[granularity] = result

        return RecordTransactionResult(
            source_id=source_id, results=results, errors=errors
        )

    async def _process_granularity(
        self,
        *,
        key: PeriodKey,
        mutation: ReportMutation,
        evaluate_thresholds: bool,
    ) -> GranularityResult:
        report, outcome = await self._write_with_retry(key, mutation)
        if outcome == AggregationOutcome.SKIPPED or not evaluate_thresholds:
            return GranularityResult(
                granularity=key.granularity,
                path=key.path,
                outcome=outcome,
                report=report,
            )

        report, alerted_levels, alert_error = await self._evaluate_thresholds(report)
        return GranularityResult(
            granularity=key.granularity,
            path=key.path,
            outcome=outcome,
            report=report,
            alerted_levels=alerted_levels,
            alert_error=alert_error,
        )

    async def _write_with_retry(
        self, key: PeriodKey, mutation: ReportMutation
    ) -> tuple[PeriodReport | None, AggregationOutcome]:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            current = await self._report_store.get(key)
            base = current or PeriodReport.empty(key)
            changed = mutation(base)
            if changed is None:
                return current, AggregationOutcome.SKIPPED

            try:
                if current is None:
                    created = replace(changed, version=1)
                    await self._report_store.create(key, created)
                    logger.info("report_created", extra={"path": key.path})
                    return created, AggregationOutcome.CREATED

                await self._report_store.update(
                    key,
                    changed.totals_fields(),
                    expected_version=current.version,
                )
                return (
                    replace(changed, version=current.version + 1),
                    AggregationOutcome.UPDATED,
                )
            except ConcurrentUpdateError:
                logger.warning(
                    "report_write_conflict",
                    extra={"path": key.path, "attempt": attempt},
                )

        raise ConcurrentUpdateError(
            message=compose_error_message(
                cause=(
                    f"{key.path} kept changing during {MAX_WRITE_ATTEMPTS} "
                    "write attempts."
                ),
                action="Retry the usage later.",
            ),
            details={"path": key.path, "attempts": MAX_WRITE_ATTEMPTS},
        )

    async def _evaluate_thresholds(
        self, report: PeriodReport
    ) -> tuple[PeriodReport, tuple[int, ...], str | None]:
        key = report.key
        policy = self._thresholds.for_granularity(key.granularity)
        if policy is None:
            return report, (), None

        crossed = policy.crossed_levels(report.total_amount, report.notified_levels())
        if not crossed:
            return report, (), None

        level = max(crossed)
        notification = self._message_builder.alert(
            report, level=level, thresholds=policy
        )
        try:
            delivered = await self._send_alert(key.granularity, notification)
        except Exception as exc:
            logger.exception(
                "threshold_alert_failed", extra={"path": key.path, "level": level}
            )
            await self._report_error(exc, context=f"threshold alert {key.path}")
            return report, (), str(exc) or type(exc).__name__

        if not delivered:
            error = NotificationDeliveryError(
                details={"path": key.path, "level": level}
            )
            logger.warning(
                "threshold_alert_rejected", extra={"path": key.path, "level": level}
            )
            await self._report_error(error, context=f"threshold alert {key.path}")
            return report, (), error.message

        flags = level_flag_fields(crossed)
        try:
            await self._report_store.update(key, flags)
        except Exception as exc:
            logger.exception(
                "threshold_flags_not_saved",
                extra={"path": key.path, "levels": crossed},
            )
            await self._report_error(exc, context=f"threshold flags {key.path}")
            return report, (), str(exc) or type(exc).__name__

        logger.info(
            "threshold_alert_sent",
            extra={"path": key.path, "level": level, "levels": crossed},
        )
        updated = replace(report, version=report.version + 1, **flags)
        return updated, tuple(crossed), None

    async def _send_alert(
        self, granularity: Granularity, notification: ReportNotification
    ) -> bool:
        if granularity == Granularity.WEEKLY:
            return await self._notifier.notify_weekly(notification)
        return await self._notifier.notify_monthly(notification)

    async def _report_error(self, error: Exception, *, context: str) -> None:
        try:
            await self._notifier.notify_error(error, context)
        except Exception:
            logger.exception("error_notification_failed", extra={"context": context})


def _validate_event(event: UsageEvent) -> None:
    if not event.source_id.strip():
        raise InvalidRequestError(
            message=compose_error_message(
                cause="source_id must not be blank.",
                action="Send the identifier of the card usage.",
            )
        )
    if not event.amount.is_finite():
        raise InvalidRequestError(
            message=compose_error_message(
                cause="amount must be a finite number.",
                action="Send the usage amount in yen.",
            ),
            details={"amount": str(event.amount)},
        )
    if event.amount == 0:
        raise InvalidRequestError(
            message=compose_error_message(
                cause="amount must not be zero.",
                action="Send a positive amount or a negative refund.",
            )
        )


def _error_code(exc: Exception) -> str:
    if isinstance(exc, DomainError):
        return exc.code
    return type(exc).__name__
