from __future__ import annotations

import asyncio
from collections.abc import Generator, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from spend_reports.api.app import create_app
from spend_reports.api.dependencies import get_notifier
from spend_reports.application.ports.notifications import ReportNotification
from spend_reports.application.ports.repositories import UsageRecord
from spend_reports.db.base import Base, import_orm_models
from spend_reports.db.session import get_session_factory
from spend_reports.domain.errors import ConcurrentUpdateError, ReportNotFoundError
from spend_reports.domain.periods import Granularity, PeriodKey
from spend_reports.domain.reports import PeriodReport
from spend_reports.domain.thresholds import ReportThresholds, ThresholdLevels
from spend_reports.services.aggregation_service import AggregationService


class FakeReportStore:
    """In-memory report store with version checks."""

    def __init__(self) -> None:
        self.reports: dict[str, PeriodReport] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.failing_paths: set[str] = set()
        self.pending_conflicts: dict[str, int] = {}
        self.fail_flag_updates = False

    def report(self, key: PeriodKey) -> PeriodReport | None:
        return self.reports.get(key.path)

    def seed(self, report: PeriodReport) -> None:
        self.reports[report.path] = replace(report, version=max(report.version, 1))

    async def get(self, key: PeriodKey) -> PeriodReport | None:
        if key.path in self.failing_paths:
            raise RuntimeError(f"store unavailable for {key.path}")
        return self.reports.get(key.path)

    async def create(self, key: PeriodKey, report: PeriodReport) -> str:
        self._raise_pending_conflict(key)
        if key.path in self.reports:
            raise ConcurrentUpdateError(details={"path": key.path})
        self.reports[key.path] = replace(report, version=1)
        self.writes.append(("create", key.path, {}))
        return key.path

    async def update(
        self,
        key: PeriodKey,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> str:
        self._raise_pending_conflict(key)
        current = self.reports.get(key.path)
        if current is None:
            raise ReportNotFoundError(details={"path": key.path})
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentUpdateError(details={"path": key.path})
        if self.fail_flag_updates and any(name.startswith("has_") for name in fields):
            raise RuntimeError("flag write failed")

        values = dict(fields)
        if "document_ids" in values:
            values["document_ids"] = tuple(values["document_ids"])
        self.reports[key.path] = replace(
            current, version=current.version + 1, **values
        )
        self.writes.append(("update", key.path, dict(fields)))
        return key.path

    async def list_for_month(
        self, granularity: Granularity, year: int, month: int
    ) -> list[PeriodReport]:
        reports = [
            report
            for report in self.reports.values()
            if report.key.granularity == granularity
            and report.key.year == year
            and report.key.month == month
        ]
        return sorted(reports, key=lambda item: item.period_start)

    def _raise_pending_conflict(self, key: PeriodKey) -> None:
        remaining = self.pending_conflicts.get(key.path, 0)
        if remaining > 0:
            self.pending_conflicts[key.path] = remaining - 1
            raise ConcurrentUpdateError(details={"path": key.path})


@dataclass
class FakeNotifier:
    """Records deliveries; channels can be set to reject or raise."""

    calls: list[tuple[str, ReportNotification]] = field(default_factory=list)
    errors: list[tuple[Exception, str]] = field(default_factory=list)
    rejecting: set[str] = field(default_factory=set)
    raising: set[str] = field(default_factory=set)

    def sent(self, channel: str) -> list[ReportNotification]:
        return [item for name, item in self.calls if name == channel]

    async def notify_daily(self, notification: ReportNotification) -> bool:
        return self._deliver("daily", notification)

    async def notify_weekly(self, notification: ReportNotification) -> bool:
        return self._deliver("weekly", notification)

    async def notify_monthly(self, notification: ReportNotification) -> bool:
        return self._deliver("monthly", notification)

    async def notify_error(self, error: Exception, context: str) -> bool:
        self.errors.append((error, context))
        return True

    def _deliver(self, channel: str, notification: ReportNotification) -> bool:
        if channel in self.raising:
            raise RuntimeError(f"{channel} webhook down")
        self.calls.append((channel, notification))
        return channel not in self.rejecting


@dataclass
class FakeUsageSource:
    records: list[UsageRecord] = field(default_factory=list)
    fail: bool = False
    queries: list[tuple[datetime, datetime]] = field(default_factory=list)

    async def query_by_date_range(
        self, start: datetime, end: datetime
    ) -> list[UsageRecord]:
        self.queries.append((start, end))
        if self.fail:
            raise RuntimeError("usage query timed out")
        return [
            record for record in self.records if start <= record.occurred_at < end
        ]


@pytest.fixture
def thresholds() -> ReportThresholds:
    return ReportThresholds(
        weekly=ThresholdLevels.from_values([1000, 5000, 10000], granularity="weekly"),
        monthly=ThresholdLevels.from_values(
            [4000, 20000, 40000], granularity="monthly"
        ),
    )


@pytest.fixture
def report_store() -> FakeReportStore:
    return FakeReportStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def usage_source() -> FakeUsageSource:
    return FakeUsageSource()


@pytest.fixture
def aggregation_service(
    report_store: FakeReportStore,
    notifier: FakeNotifier,
    thresholds: ReportThresholds,
) -> AggregationService:
    return AggregationService(
        report_store=report_store,
        notifier=notifier,
        thresholds=thresholds,
    )


@pytest.fixture
def sqlite_session_factory(
    tmp_path: Path,
) -> Generator[async_sessionmaker[AsyncSession], None, None]:
    import_orm_models()
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'spend_reports.db'}",
        poolclass=NullPool,
    )

    async def create_schema() -> None:
        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        asyncio.run(engine.dispose())


@pytest.fixture
def client(
    sqlite_session_factory: async_sessionmaker[AsyncSession],
    notifier: FakeNotifier,
) -> Generator[TestClient, None, None]:
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: sqlite_session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
