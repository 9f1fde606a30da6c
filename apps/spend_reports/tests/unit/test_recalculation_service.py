"""Unit tests for report recalculation."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from spend_reports.application.ports.repositories import UsageRecord
from spend_reports.domain.errors import InvalidRequestError
from spend_reports.domain.periods import APP_TIMEZONE, Granularity, daily_key
from spend_reports.domain.reports import OperationStatus
from spend_reports.services import recalculation_service as recalculation_module
from spend_reports.services.aggregation_service import AggregationService
from spend_reports.services.recalculation_service import (
    RecalculationRequest,
    RecalculationService,
    is_within_error_budget,
)


def _usage(index: int, day: int, amount: str, hour: int = 12) -> UsageRecord:
    return UsageRecord(
        document_path=f"card_usages/u-{index}",
        amount=Decimal(amount),
        occurred_at=datetime(2024, 3, day, hour, 0, tzinfo=APP_TIMEZONE),
    )


def _build_service(
    usage_source,
    aggregation_service: AggregationService,
    notifier,
    *,
    batch_size: int = 50,
    pause_seconds: float = 0,
) -> RecalculationService:
    return RecalculationService(
        usage_source=usage_source,
        aggregation_service=aggregation_service,
        notifier=notifier,
        batch_size=batch_size,
        pause_seconds=pause_seconds,
    )


MARCH = RecalculationRequest(start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))


def test_range_longer_than_ninety_days_is_rejected(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    service = _build_service(usage_source, aggregation_service, notifier)
    request = RecalculationRequest(
        start_date=date(2024, 1, 1), end_date=date(2024, 1, 1) + timedelta(days=91)
    )

    with pytest.raises(InvalidRequestError):
        asyncio.run(service.recalculate(request))
    assert usage_source.queries == []


def test_ninety_day_range_is_accepted(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    service = _build_service(usage_source, aggregation_service, notifier)
    request = RecalculationRequest(
        start_date=date(2024, 1, 1), end_date=date(2024, 1, 1) + timedelta(days=90)
    )

    result = asyncio.run(service.recalculate(request))

    assert result.success is True
    assert result.total_found == 0


def test_end_before_start_is_rejected(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    service = _build_service(usage_source, aggregation_service, notifier)

    with pytest.raises(InvalidRequestError):
        service.validate(
            RecalculationRequest(
                start_date=date(2024, 3, 10), end_date=date(2024, 3, 9)
            )
        )


def test_dry_run_writes_nothing_and_matches_live_run(
    usage_source, aggregation_service: AggregationService, report_store, notifier
) -> None:
    usage_source.records = [
        _usage(1, 1, "1200"),
        _usage(2, 1, "800", hour=23),
        _usage(3, 8, "6000"),
        _usage(4, 15, "-300"),
        _usage(5, 31, "2500"),
    ]
    service = _build_service(usage_source, aggregation_service, notifier)

    dry = asyncio.run(
        service.recalculate(
            RecalculationRequest(
                start_date=MARCH.start_date, end_date=MARCH.end_date, dry_run=True
            )
        )
    )

    assert report_store.writes == []
    assert notifier.calls == []
    assert dry.total_found == 5
    assert dry.total_processed == 0
    assert dry.expected_reports == {
        Granularity.DAILY: 4,
        Granularity.WEEKLY: 4,
        Granularity.MONTHLY: 1,
    }

    live = asyncio.run(service.recalculate(MARCH))

    assert live.status == OperationStatus.SUCCESS
    assert live.reports_created == dry.expected_reports
    for projection in dry.projections:
        stored = report_store.reports[projection.path]
        assert stored.total_count == projection.count
        assert stored.total_amount == projection.total_amount
    assert len(report_store.reports) == len(dry.projections)


def test_rerun_is_idempotent(
    usage_source, aggregation_service: AggregationService, report_store, notifier
) -> None:
    usage_source.records = [_usage(1, 5, "400"), _usage(2, 6, "700")]
    service = _build_service(usage_source, aggregation_service, notifier)

    async def scenario():
        await service.recalculate(MARCH)
        return await service.recalculate(MARCH)

    second = asyncio.run(scenario())

    assert second.usages_skipped == {
        Granularity.DAILY: 2,
        Granularity.WEEKLY: 2,
        Granularity.MONTHLY: 2,
    }
    assert second.reports_created == {g: 0 for g in Granularity}
    assert report_store.reports["reports/monthly/2024/03"].total_amount == Decimal(
        "1100"
    )


def test_requested_granularities_are_respected(
    usage_source, aggregation_service: AggregationService, report_store, notifier
) -> None:
    usage_source.records = [_usage(1, 5, "400")]
    service = _build_service(usage_source, aggregation_service, notifier)

    result = asyncio.run(
        service.recalculate(
            RecalculationRequest(
                start_date=MARCH.start_date,
                end_date=MARCH.end_date,
                granularities=("monthly",),
                executed_by="ops",
            )
        )
    )

    assert result.granularities == (Granularity.MONTHLY,)
    assert list(report_store.reports) == ["reports/monthly/2024/03"]
    assert report_store.reports["reports/monthly/2024/03"].last_updated_by == "ops"


def test_batches_pause_between_each_other(
    usage_source,
    aggregation_service: AggregationService,
    notifier,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    usage_source.records = [
        _usage(index, 1 + index % 28, "10") for index in range(120)
    ]
    service = _build_service(
        usage_source, aggregation_service, notifier, pause_seconds=0.25
    )
    pauses: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        pauses.append(seconds)

    monkeypatch.setattr(recalculation_module.asyncio, "sleep", fake_sleep)

    result = asyncio.run(service.recalculate(MARCH))

    assert pauses == [0.25, 0.25]
    assert result.total_processed == 120


def test_single_failure_under_ten_percent_is_success(
    usage_source, aggregation_service: AggregationService, report_store, notifier
) -> None:
    usage_source.records = [_usage(index, index + 1, "100") for index in range(20)]
    report_store.failing_paths.add(daily_key(2024, 3, 3).path)
    service = _build_service(usage_source, aggregation_service, notifier)

    result = asyncio.run(service.recalculate(MARCH))

    assert result.success is True
    assert result.status == OperationStatus.PARTIAL
    assert [error.document_path for error in result.errors] == ["card_usages/u-2"]
    assert result.errors[0].details["failures"][0]["path"] == "reports/daily/2024-03/03"
    assert result.total_processed == 20


def test_failures_at_ten_percent_are_failure(
    usage_source, aggregation_service: AggregationService, report_store, notifier
) -> None:
    usage_source.records = [_usage(index, index + 1, "100") for index in range(10)]
    report_store.failing_paths.add(daily_key(2024, 3, 3).path)
    service = _build_service(usage_source, aggregation_service, notifier)

    result = asyncio.run(service.recalculate(MARCH))

    assert result.success is False
    assert result.status == OperationStatus.FAILED
    assert result.total_processed == 10


def test_query_failure_is_reported_as_failed_result(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    usage_source.fail = True
    service = _build_service(usage_source, aggregation_service, notifier)

    result = asyncio.run(service.recalculate(MARCH))

    assert result.success is False
    assert result.status == OperationStatus.FAILED
    assert result.errors[0].details == {"stage": "query"}
    assert notifier.errors[0][1] == "recalculation query"


def test_query_covers_whole_end_day_in_tokyo(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    service = _build_service(usage_source, aggregation_service, notifier)

    asyncio.run(service.recalculate(MARCH))

    start, end = usage_source.queries[0]
    assert start == datetime(2024, 3, 1, tzinfo=APP_TIMEZONE)
    assert end == datetime(2024, 4, 1, tzinfo=APP_TIMEZONE)


@pytest.mark.parametrize(
    ("errors", "total", "expected"),
    [(0, 0, True), (1, 11, True), (1, 10, False), (3, 10, False)],
)
def test_error_budget(errors: int, total: int, expected: bool) -> None:
    assert is_within_error_budget(errors, total) is expected


def test_range_limit_above_ninety_days_is_refused(
    usage_source, aggregation_service: AggregationService, notifier
) -> None:
    with pytest.raises(ValueError, match="between 1 and 90"):
        RecalculationService(
            usage_source=usage_source,
            aggregation_service=aggregation_service,
            notifier=notifier,
            max_range_days=365,
        )
