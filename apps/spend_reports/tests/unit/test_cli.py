from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from spend_reports import cli
from spend_reports.application.ports.repositories import UsageRecord
from spend_reports.core.wiring import Services
from spend_reports.domain.periods import APP_TIMEZONE, daily_key
from spend_reports.domain.reports import PeriodReport
from spend_reports.domain.thresholds import ReportThresholds
from spend_reports.services.aggregation_service import AggregationService
from spend_reports.services.recalculation_service import RecalculationService
from spend_reports.services.scheduling_service import SchedulingService

runner = CliRunner()


class FakeEngine:
    def __init__(self) -> None:
        self.dispose_calls = 0

    async def dispose(self) -> None:
        self.dispose_calls += 1


@pytest.fixture(autouse=True)
def engine(monkeypatch: pytest.MonkeyPatch) -> FakeEngine:
    fake = FakeEngine()
    monkeypatch.setattr(cli, "engine", fake)
    return fake


@pytest.fixture
def services(
    report_store,
    notifier,
    usage_source,
    aggregation_service: AggregationService,
    thresholds: ReportThresholds,
    monkeypatch: pytest.MonkeyPatch,
) -> Services:
    built = Services(
        report_store=report_store,
        card_usages=None,
        aggregation=aggregation_service,
        scheduling=SchedulingService(
            report_store=report_store, notifier=notifier, thresholds=thresholds
        ),
        recalculation=RecalculationService(
            usage_source=usage_source,
            aggregation_service=aggregation_service,
            notifier=notifier,
            pause_seconds=0,
        ),
    )
    monkeypatch.setattr(cli, "_build_services", lambda: built)
    return built


def test_healthcheck() -> None:
    result = runner.invoke(cli.app, ["healthcheck"])

    assert result.exit_code == 0
    assert "spend-reports is ready" in result.stdout


def test_run_daily_schedule_prints_outcomes(
    services: Services, report_store, notifier
) -> None:
    report_store.seed(
        PeriodReport(
            key=daily_key(2024, 3, 8), total_amount=Decimal("500"), total_count=1
        )
    )

    result = runner.invoke(cli.app, ["run-daily-schedule", "--as-of", "2024-03-09"])

    assert result.exit_code == 0
    assert "Closed day: 2024-03-08" in result.stdout
    assert "daily: sent (reports/daily/2024-03/08)" in result.stdout
    assert "weekly: not_due" in result.stdout
    assert len(notifier.sent("daily")) == 1


def test_recalculate_dry_run_prints_projections(
    services: Services, usage_source, report_store
) -> None:
    usage_source.records = [
        UsageRecord(
            document_path="card_usages/u-1",
            amount=Decimal("1500"),
            occurred_at=datetime(2024, 3, 8, 3, 0, tzinfo=APP_TIMEZONE),
        )
    ]

    result = runner.invoke(
        cli.app,
        [
            "recalculate",
            "--start",
            "2024-03-01",
            "--end",
            "2024-03-31",
            "-g",
            "monthly",
            "--dry-run",
        ],
    )

    assert result.exit_code == 0
    assert "Found: 1 | Processed: 0 | Errors: 0" in result.stdout
    assert "reports/monthly/2024/03: 1 usages, 1500 yen" in result.stdout
    assert report_store.writes == []


def test_recalculate_rejects_long_range(services: Services) -> None:
    result = runner.invoke(
        cli.app,
        ["recalculate", "--start", "2024-01-01", "--end", "2024-06-01"],
    )

    assert result.exit_code == 2


def test_recalculate_live_reports_created_counts(
    services: Services, usage_source, report_store
) -> None:
    usage_source.records = [
        UsageRecord(
            document_path="card_usages/u-1",
            amount=Decimal("700"),
            occurred_at=datetime(2024, 3, 8, 3, 0, tzinfo=APP_TIMEZONE),
        )
    ]

    result = runner.invoke(
        cli.app, ["recalculate", "--start", "2024-03-08", "--end", "2024-03-08"]
    )

    assert result.exit_code == 0
    assert "daily: created 1, updated 0" in result.stdout
    assert report_store.report(daily_key(2024, 3, 8)).total_amount == Decimal("700")
    assert report_store.report(daily_key(2024, 3, 8)).period_start == date(2024, 3, 8)


def test_run_daily_schedule_disposes_engine(
    services: Services, engine: FakeEngine
) -> None:
    result = runner.invoke(cli.app, ["run-daily-schedule", "--as-of", "2024-03-09"])

    assert result.exit_code == 0
    assert engine.dispose_calls == 1


def test_recalculate_disposes_engine_when_request_is_refused(
    services: Services, engine: FakeEngine
) -> None:
    result = runner.invoke(
        cli.app,
        ["recalculate", "--start", "2024-01-01", "--end", "2024-06-01"],
    )

    assert result.exit_code == 2
    assert engine.dispose_calls == 1
