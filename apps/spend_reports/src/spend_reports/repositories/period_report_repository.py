"""SQLAlchemy persistence for period reports."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spend_reports.db.models.period_report import PeriodReportRecord
from spend_reports.domain.errors import (
    ConcurrentUpdateError,
    ReportNotFoundError,
    compose_error_message,
)
from spend_reports.domain.periods import Granularity, PeriodKey
from spend_reports.domain.reports import WRITABLE_FIELDS, PeriodReport

FLAG_FIELDS = frozenset(
    {
        "has_notified",
        "has_notified_level1",
        "has_notified_level2",
        "has_notified_level3",
        "has_report_sent",
    }
)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_domain(record: PeriodReportRecord) -> PeriodReport:
    return PeriodReport(
        key=PeriodKey(
            granularity=Granularity(record.granularity),
            year=record.year,
            month=record.month,
            day=record.day,
            term=record.term,
        ),
        total_amount=Decimal(record.total_amount),
        total_count=record.total_count,
        document_ids=tuple(str(item) for item in record.document_ids),
        has_notified=record.has_notified,
        has_notified_level1=record.has_notified_level1,
        has_notified_level2=record.has_notified_level2,
        has_notified_level3=record.has_notified_level3,
        has_report_sent=record.has_report_sent,
        last_updated_at=_as_utc(record.last_updated_at),
        last_updated_by=record.last_updated_by,
        version=record.version,
    )


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown report fields: {sorted(unknown)}")

    values: dict[str, Any] = {}
    for name, value in fields.items():
        if name in FLAG_FIELDS and value is not True:
            raise ValueError(f"Notification flag {name} can only be set to true.")
        if name == "document_ids":
            value = list(value)
        elif name == "last_updated_at":
            value = _as_utc(value)
        values[name] = value
    return values


class PeriodReportRepository:
    """Report store backed by the ``period_reports`` table.

    Each call runs in its own session and transaction. Updates with an
    expected version are applied with a conditional UPDATE on the version
    column.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: PeriodKey) -> PeriodReport | None:
        """Fetch report by period key."""

        statement = select(PeriodReportRecord).where(
            PeriodReportRecord.path == key.path
        )
        async with self._session_factory() as session:
            record = await session.scalar(statement)
        return _to_domain(record) if record is not None else None

    async def create(self, key: PeriodKey, report: PeriodReport) -> str:
        """Insert a new report, failing when the path already exists."""

        period_start, period_end = key.bounds
        record = PeriodReportRecord(
            path=key.path,
            granularity=key.granularity,
            year=key.year,
            month=key.month,
            day=key.day,
            term=key.term,
            period_start=period_start,
            period_end=period_end,
            total_amount=report.total_amount,
            total_count=report.total_count,
            document_ids=list(report.document_ids),
            has_notified=report.has_notified,
            has_notified_level1=report.has_notified_level1,
            has_notified_level2=report.has_notified_level2,
            has_notified_level3=report.has_notified_level3,
            has_report_sent=report.has_report_sent,
            version=1,
            last_updated_at=_as_utc(report.last_updated_at),
            last_updated_by=report.last_updated_by,
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConcurrentUpdateError(
                    message=compose_error_message(
                        cause=f"{key.path} was created by another writer.",
                        action="Reload the report and apply the change again.",
                    ),
                    details={"path": key.path},
                ) from exc
        return key.path

    async def update(
        self,
        key: PeriodKey,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> str:
        """Apply a partial update and bump the report version."""

        values = _column_values(fields)
        statement = update(PeriodReportRecord).where(
            PeriodReportRecord.path == key.path
        )
        if expected_version is not None:
            statement = statement.where(PeriodReportRecord.version == expected_version)
        statement = statement.values(
            **values, version=PeriodReportRecord.version + 1
        ).execution_options(synchronize_session=False)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            if result.rowcount == 0:
                exists = await session.scalar(
                    select(PeriodReportRecord.id).where(
                        PeriodReportRecord.path == key.path
                    )
                )
                await session.rollback()
                if exists is None:
                    raise ReportNotFoundError(details={"path": key.path})
                raise ConcurrentUpdateError(
                    details={"path": key.path, "expected_version": expected_version}
                )
            await session.commit()
        return key.path

    async def list_for_month(
        self, granularity: Granularity, year: int, month: int
    ) -> list[PeriodReport]:
        """List reports of one granularity inside a month ordered by start."""

        statement = (
            select(PeriodReportRecord)
            .where(
                PeriodReportRecord.granularity == granularity,
                PeriodReportRecord.year == year,
                PeriodReportRecord.month == month,
            )
            .order_by(PeriodReportRecord.period_start)
        )
        async with self._session_factory() as session:
            records = (await session.scalars(statement)).all()
        return [_to_domain(record) for record in records]
