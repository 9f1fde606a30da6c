"""Repository ports for the aggregation core."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from spend_reports.domain.periods import Granularity, PeriodKey
from spend_reports.domain.reports import PeriodReport


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """Card usage event as seen by the aggregation core."""

    document_path: str
    amount: Decimal
    occurred_at: datetime


class ReportStore(Protocol):
    """Port for period report persistence.

    ``update`` raises ``ReportNotFoundError`` when the report does not exist
    and ``ConcurrentUpdateError`` when ``expected_version`` does not match the
    stored version. ``create`` raises ``ConcurrentUpdateError`` when another
    writer created the same report first.
    """

    async def get(self, key: PeriodKey) -> PeriodReport | None:
        """Return the report for key or None when absent."""

    async def create(self, key: PeriodKey, report: PeriodReport) -> str:
        """Persist a new report and return its path."""

    async def update(
        self,
        key: PeriodKey,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> str:
        """Apply a partial update and return the report path."""

    async def list_for_month(
        self, granularity: Granularity, year: int, month: int
    ) -> list[PeriodReport]:
        """Return reports of one granularity inside a month."""


class UsageSource(Protocol):
    """Port for bulk reads of stored card usages."""

    async def query_by_date_range(
        self, start: datetime, end: datetime
    ) -> list[UsageRecord]:
        """Return active usages with start <= occurred_at < end."""
