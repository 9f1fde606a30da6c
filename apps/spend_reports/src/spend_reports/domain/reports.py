"""Period report aggregate shared by all granularities."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from spend_reports.domain.periods import Granularity, PeriodKey
from spend_reports.domain.thresholds import ALERT_LEVELS


class OperationStatus(enum.StrEnum):
    """Outcome of a multi-step operation."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_counts(cls, *, attempted: int, failed: int) -> OperationStatus:
        if failed == 0:
            return cls.SUCCESS
        if failed >= attempted:
            return cls.FAILED
        return cls.PARTIAL


def level_flag_field(level: int) -> str:
    return f"has_notified_level{level}"


def final_flag_field(granularity: Granularity) -> str:
    """Name of the flag marking the scheduled summary as sent."""

    if granularity == Granularity.DAILY:
        return "has_notified"
    return "has_report_sent"


@dataclass(slots=True, frozen=True)
class PeriodReport:
    """Running totals and notification state of one period."""

    key: PeriodKey
    total_amount: Decimal = Decimal("0")
    total_count: int = 0
    document_ids: tuple[str, ...] = field(default_factory=tuple)
    has_notified: bool = False
    has_notified_level1: bool = False
    has_notified_level2: bool = False
    has_notified_level3: bool = False
    has_report_sent: bool = False
    last_updated_at: datetime | None = None
    last_updated_by: str = "system"
    version: int = 0

    @classmethod
    def empty(cls, key: PeriodKey) -> PeriodReport:
        return cls(key=key)

    @property
    def period_start(self) -> date:
        return self.key.bounds[0]

    @property
    def period_end(self) -> date:
        return self.key.bounds[1]

    @property
    def path(self) -> str:
        return self.key.path

    def contains(self, document_id: str) -> bool:
        return document_id in self.document_ids

    def notified_levels(self) -> set[int]:
        return {
            level for level in ALERT_LEVELS if getattr(self, level_flag_field(level))
        }

    @property
    def final_report_sent(self) -> bool:
        return bool(getattr(self, final_flag_field(self.key.granularity)))

    def fold(
        self,
        *,
        document_id: str,
        amount: Decimal,
        updated_by: str,
        updated_at: datetime,
    ) -> PeriodReport:
        """Return a copy with one more contributing transaction."""

        return replace(
            self,
            total_amount=self.total_amount + amount,
            total_count=self.total_count + 1,
            document_ids=(*self.document_ids, document_id),
            last_updated_at=updated_at,
            last_updated_by=updated_by,
        )

    def unfold(
        self,
        *,
        document_id: str,
        amount: Decimal,
        updated_by: str,
        updated_at: datetime,
    ) -> PeriodReport:
        """Return a copy without one contributing transaction."""

        return replace(
            self,
            total_amount=self.total_amount - amount,
            total_count=max(self.total_count - 1, 0),
            document_ids=tuple(
                item for item in self.document_ids if item != document_id
            ),
            last_updated_at=updated_at,
            last_updated_by=updated_by,
        )

    def adjust(
        self, *, amount_diff: Decimal, updated_by: str, updated_at: datetime
    ) -> PeriodReport:
        return replace(
            self,
            total_amount=self.total_amount + amount_diff,
            last_updated_at=updated_at,
            last_updated_by=updated_by,
        )

    def totals_fields(self) -> dict[str, Any]:
        """Fields written when totals change."""

        return {
            "total_amount": self.total_amount,
            "total_count": self.total_count,
            "document_ids": list(self.document_ids),
            "last_updated_at": self.last_updated_at,
            "last_updated_by": self.last_updated_by,
        }


def level_flag_fields(levels: Iterable[int]) -> dict[str, Any]:
    return {level_flag_field(level): True for level in levels}


WRITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "total_amount",
        "total_count",
        "document_ids",
        "has_notified",
        "has_notified_level1",
        "has_notified_level2",
        "has_notified_level3",
        "has_report_sent",
        "last_updated_at",
        "last_updated_by",
    }
)
