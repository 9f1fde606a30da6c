"""Daily delivery of final period summaries."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from spend_reports.application.ports.notifications import Notifier, ReportNotification
from spend_reports.application.ports.repositories import ReportStore
from spend_reports.domain.errors import NotificationDeliveryError
from spend_reports.domain.periods import (
    Granularity,
    PeriodKey,
    resolve_date,
    resolve_occurred_at,
)
from spend_reports.domain.reports import OperationStatus, final_flag_field
from spend_reports.domain.thresholds import ReportThresholds
from spend_reports.reporting.report_notifications import ReportNotificationBuilder

logger = logging.getLogger(__name__)


class ScheduleOutcome(enum.StrEnum):
    """Outcome of one summary delivery attempt."""

    SENT = "sent"
    ALREADY_SENT = "already_sent"
    NOT_FOUND = "not_found"
    NOT_DUE = "not_due"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ScheduledReportResult:
    """Delivery result for one period report."""

    granularity: Granularity
    path: str
    outcome: ScheduleOutcome
    message: str | None = None


@dataclass(slots=True, frozen=True)
class ScheduleResult:
    """Combined result of one daily scheduler run."""

    as_of: date
    closed_date: date
    reports: list[ScheduledReportResult]

    @property
    def status(self) -> OperationStatus:
        attempted = [
            item for item in self.reports if item.outcome != ScheduleOutcome.NOT_DUE
        ]
        failed = [item for item in attempted if item.outcome == ScheduleOutcome.FAILED]
        return OperationStatus.from_counts(attempted=len(attempted), failed=len(failed))

    def outcome_for(self, granularity: Granularity) -> ScheduleOutcome | None:
        for item in self.reports:
            if item.granularity == granularity:
                return item.outcome
        return None


def resolve_as_of(as_of: date | datetime | None) -> date:
    """Return the Tokyo calendar date of as_of, defaulting to today."""

    if as_of is None or isinstance(as_of, datetime):
        return resolve_occurred_at(as_of).date()
    return as_of


class SchedulingService:
    """Sends each closed period's summary exactly once."""

    def __init__(
        self,
        *,
        report_store: ReportStore,
        notifier: Notifier,
        thresholds: ReportThresholds,
        message_builder: ReportNotificationBuilder | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._report_store = report_store
        self._notifier = notifier
        self._thresholds = thresholds
        self._message_builder = message_builder or ReportNotificationBuilder()
        # Server-side Tokyo date; caller-supplied as_of never opens a period early.
        self._today = today or (lambda: resolve_as_of(None))

    async def run_daily_schedule(
        self, as_of: date | datetime | None = None
    ) -> ScheduleResult:
        """Send the summaries of periods that closed on the day before as_of.

        The daily summary is always attempted. Weekly and monthly summaries
        are attempted only when that day ends a term or a month.
        """

        as_of_date = resolve_as_of(as_of)
        closed = resolve_date(as_of_date - timedelta(days=1))
        logger.info(
            "daily_schedule_started",
            extra={"as_of": as_of_date.isoformat(), "closed": closed.local_date.isoformat()},
        )

        reports = [await self.send_report(closed.daily_key, as_of=as_of_date)]
        for key, is_due in (
            (closed.weekly_key, closed.is_last_day_of_term),
            (closed.monthly_key, closed.is_last_day_of_month),
        ):
            if is_due:
                reports.append(await self.send_report(key, as_of=as_of_date))
            else:
                reports.append(
                    ScheduledReportResult(
                        granularity=key.granularity,
                        path=key.path,
                        outcome=ScheduleOutcome.NOT_DUE,
                    )
                )

        result = ScheduleResult(
            as_of=as_of_date, closed_date=closed.local_date, reports=reports
        )
        logger.info(
            "daily_schedule_finished",
            extra={
                "status": str(result.status),
                "outcomes": {str(item.granularity): str(item.outcome) for item in reports},
            },
        )
        return result

    async def send_report(
        self, key: PeriodKey, *, as_of: date | datetime | None = None
    ) -> ScheduledReportResult:
        """Send one period's summary unless it is already sent or still open."""

        as_of_date = resolve_as_of(as_of)
        if not (key.has_ended(as_of_date) and key.has_ended(self._today())):
            return ScheduledReportResult(
                granularity=key.granularity,
                path=key.path,
                outcome=ScheduleOutcome.NOT_DUE,
                message=f"period ends on {key.bounds[1].isoformat()}",
            )

        try:
            return await self._send_once(key)
        except Exception as exc:
            logger.exception("scheduled_report_failed", extra={"path": key.path})
            await self._report_error(exc, context=f"scheduled report {key.path}")
            return ScheduledReportResult(
                granularity=key.granularity,
                path=key.path,
                outcome=ScheduleOutcome.FAILED,
                message=str(exc) or type(exc).__name__,
            )

    async def _send_once(self, key: PeriodKey) -> ScheduledReportResult:
        report = await self._report_store.get(key)
        if report is None:
            logger.info("scheduled_report_not_found", extra={"path": key.path})
            return ScheduledReportResult(
                granularity=key.granularity,
                path=key.path,
                outcome=ScheduleOutcome.NOT_FOUND,
            )
        if report.final_report_sent:
            logger.info("scheduled_report_already_sent", extra={"path": key.path})
            return ScheduledReportResult(
                granularity=key.granularity,
                path=key.path,
                outcome=ScheduleOutcome.ALREADY_SENT,
            )

        notification = self._message_builder.scheduled(
            report, thresholds=self._thresholds.for_granularity(key.granularity)
        )
        if not await self._send(key.granularity, notification):
            raise NotificationDeliveryError(details={"path": key.path})

        await self._report_store.update(key, {final_flag_field(key.granularity): True})
        logger.info("scheduled_report_sent", extra={"path": key.path})
        return ScheduledReportResult(
            granularity=key.granularity,
            path=key.path,
            outcome=ScheduleOutcome.SENT,
        )

    async def _send(
        self, granularity: Granularity, notification: ReportNotification
    ) -> bool:
        if granularity == Granularity.DAILY:
            return await self._notifier.notify_daily(notification)
        if granularity == Granularity.WEEKLY:
            return await self._notifier.notify_weekly(notification)
        return await self._notifier.notify_monthly(notification)

    async def _report_error(self, error: Exception, *, context: str) -> None:
        try:
            await self._notifier.notify_error(error, context)
        except Exception:
            logger.exception("error_notification_failed", extra={"context": context})
