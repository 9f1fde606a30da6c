"""Unit tests for the daily scheduler."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from spend_reports.domain.periods import (
    APP_TIMEZONE,
    Granularity,
    PeriodKey,
    daily_key,
    monthly_key,
    weekly_key,
)
from spend_reports.domain.reports import OperationStatus, PeriodReport
from spend_reports.domain.thresholds import ReportThresholds
from spend_reports.services.scheduling_service import (
    ScheduleOutcome,
    SchedulingService,
)


@pytest.fixture
def scheduling_service(
    report_store, notifier, thresholds: ReportThresholds
) -> SchedulingService:
    return SchedulingService(
        report_store=report_store,
        notifier=notifier,
        thresholds=thresholds,
    )


def _seed(report_store, key: PeriodKey, amount: str, count: int = 1) -> None:
    report_store.seed(
        PeriodReport(
            key=key,
            total_amount=Decimal(amount),
            total_count=count,
            document_ids=tuple(f"u-{index}" for index in range(count)),
        )
    )


def test_mid_term_day_sends_only_daily_summary(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, daily_key(2024, 3, 8), "1200")

    result = asyncio.run(scheduling_service.run_daily_schedule(date(2024, 3, 9)))

    assert result.closed_date == date(2024, 3, 8)
    assert result.outcome_for(Granularity.DAILY) == ScheduleOutcome.SENT
    assert result.outcome_for(Granularity.WEEKLY) == ScheduleOutcome.NOT_DUE
    assert result.outcome_for(Granularity.MONTHLY) == ScheduleOutcome.NOT_DUE
    assert result.status == OperationStatus.SUCCESS
    assert report_store.report(daily_key(2024, 3, 8)).has_notified is True
    assert [name for name, _ in notifier.calls] == ["daily"]


def test_last_day_of_term_sends_weekly_summary(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, daily_key(2024, 3, 14), "300")
    _seed(report_store, weekly_key(2024, 3, 2), "6200", count=4)

    result = asyncio.run(scheduling_service.run_daily_schedule(date(2024, 3, 15)))

    assert result.outcome_for(Granularity.WEEKLY) == ScheduleOutcome.SENT
    assert result.outcome_for(Granularity.MONTHLY) == ScheduleOutcome.NOT_DUE
    assert report_store.report(weekly_key(2024, 3, 2)).has_report_sent is True
    weekly = notifier.sent("weekly")[0]
    assert weekly.alert_level == 0
    assert weekly.period == "2024/03/08 〜 2024/03/14"
    assert "ウィークリーレポート" in weekly.title
    assert "レベル2" in weekly.additional_info


def test_month_end_sends_all_three_summaries(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, daily_key(2024, 2, 29), "100")
    _seed(report_store, weekly_key(2024, 2, 5), "100")
    _seed(report_store, monthly_key(2024, 2), "3000", count=6)

    result = asyncio.run(
        scheduling_service.run_daily_schedule(
            datetime(2024, 3, 1, 9, 0, tzinfo=APP_TIMEZONE)
        )
    )

    assert [item.outcome for item in result.reports] == [ScheduleOutcome.SENT] * 3
    assert [name for name, _ in notifier.calls] == ["daily", "weekly", "monthly"]
    assert report_store.report(monthly_key(2024, 2)).has_report_sent is True


def test_daily_schedule_is_idempotent(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, daily_key(2024, 3, 8), "1200")

    async def scenario():
        await scheduling_service.run_daily_schedule(date(2024, 3, 9))
        return await scheduling_service.run_daily_schedule(date(2024, 3, 9))

    second = asyncio.run(scenario())

    assert second.outcome_for(Granularity.DAILY) == ScheduleOutcome.ALREADY_SENT
    assert len(notifier.sent("daily")) == 1


def test_missing_reports_are_skipped_silently(
    scheduling_service: SchedulingService, notifier
) -> None:
    result = asyncio.run(scheduling_service.run_daily_schedule(date(2024, 4, 1)))

    assert [item.outcome for item in result.reports] == [
        ScheduleOutcome.NOT_FOUND
    ] * 3
    assert result.status == OperationStatus.SUCCESS
    assert notifier.calls == []
    assert notifier.errors == []


def test_failed_delivery_is_isolated_and_reported(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, daily_key(2024, 3, 31), "100")
    _seed(report_store, weekly_key(2024, 3, 5), "100")
    _seed(report_store, monthly_key(2024, 3), "100")
    notifier.rejecting.add("weekly")

    result = asyncio.run(scheduling_service.run_daily_schedule(date(2024, 4, 1)))

    assert result.outcome_for(Granularity.DAILY) == ScheduleOutcome.SENT
    assert result.outcome_for(Granularity.WEEKLY) == ScheduleOutcome.FAILED
    assert result.outcome_for(Granularity.MONTHLY) == ScheduleOutcome.SENT
    assert result.status == OperationStatus.PARTIAL
    assert report_store.report(weekly_key(2024, 3, 5)).has_report_sent is False
    assert notifier.errors[0][0].code == "NOTIFICATION_DELIVERY_FAILED"


def test_send_report_refuses_open_period(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, monthly_key(2024, 3), "100")

    result = asyncio.run(
        scheduling_service.send_report(monthly_key(2024, 3), as_of=date(2024, 3, 31))
    )

    assert result.outcome == ScheduleOutcome.NOT_DUE
    assert notifier.calls == []


def test_send_report_delivers_closed_period_once(
    scheduling_service: SchedulingService, report_store, notifier
) -> None:
    _seed(report_store, weekly_key(2024, 3, 1), "900", count=3)

    async def scenario():
        first = await scheduling_service.send_report(
            weekly_key(2024, 3, 1), as_of=date(2024, 3, 20)
        )
        second = await scheduling_service.send_report(
            weekly_key(2024, 3, 1), as_of=date(2024, 3, 20)
        )
        return first, second

    first, second = asyncio.run(scenario())

    assert first.outcome == ScheduleOutcome.SENT
    assert second.outcome == ScheduleOutcome.ALREADY_SENT
    assert "平均支出: 300円/件" in notifier.sent("weekly")[0].additional_info


def test_send_report_ignores_future_as_of_for_open_period(
    report_store, notifier, thresholds: ReportThresholds
) -> None:
    service = SchedulingService(
        report_store=report_store,
        notifier=notifier,
        thresholds=thresholds,
        today=lambda: date(2024, 3, 10),
    )
    key = weekly_key(2024, 3, 2)
    _seed(report_store, key, "3000")

    result = asyncio.run(service.send_report(key, as_of=date(2024, 4, 20)))

    assert result.outcome == ScheduleOutcome.NOT_DUE
    assert report_store.report(key).has_report_sent is False
    assert notifier.sent("weekly") == []


def test_daily_schedule_with_future_as_of_keeps_open_month_unsent(
    report_store, notifier, thresholds: ReportThresholds
) -> None:
    service = SchedulingService(
        report_store=report_store,
        notifier=notifier,
        thresholds=thresholds,
        today=lambda: date(2024, 3, 20),
    )
    _seed(report_store, daily_key(2024, 3, 31), "500")
    _seed(report_store, monthly_key(2024, 3), "500")

    result = asyncio.run(service.run_daily_schedule(date(2024, 4, 1)))

    assert result.outcome_for(Granularity.DAILY) == ScheduleOutcome.NOT_DUE
    assert result.outcome_for(Granularity.MONTHLY) == ScheduleOutcome.NOT_DUE
    assert report_store.report(monthly_key(2024, 3)).has_report_sent is False
