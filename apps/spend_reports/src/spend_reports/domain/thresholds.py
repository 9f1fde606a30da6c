"""Alert threshold policy for weekly and monthly aggregates."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from spend_reports.core.settings import Settings, get_settings
from spend_reports.domain.errors import (
    ThresholdConfigurationError,
    compose_error_message,
)
from spend_reports.domain.periods import Granularity

ALERT_LEVELS: tuple[int, ...] = (1, 2, 3)


@dataclass(slots=True, frozen=True)
class ThresholdLevels:
    """Three strictly ascending alert thresholds."""

    level1: Decimal
    level2: Decimal
    level3: Decimal

    @classmethod
    def from_values(
        cls, values: Sequence[int | Decimal], *, granularity: str
    ) -> ThresholdLevels:
        if len(values) != len(ALERT_LEVELS):
            raise ThresholdConfigurationError(
                message=compose_error_message(
                    cause=(
                        f"{granularity} thresholds must define level1, level2 "
                        f"and level3, got {len(values)} values."
                    ),
                    action="Configure exactly three comma separated amounts.",
                ),
                details={"granularity": granularity, "values": list(values)},
            )

        level1, level2, level3 = (Decimal(value) for value in values)
        if level1 <= 0 or not level1 < level2 < level3:
            raise ThresholdConfigurationError(
                message=compose_error_message(
                    cause=(
                        f"{granularity} thresholds must satisfy "
                        "0 < level1 < level2 < level3."
                    ),
                    action="Reorder the configured amounts and restart.",
                ),
                details={"granularity": granularity, "values": [str(v) for v in values]},
            )
        return cls(level1=level1, level2=level2, level3=level3)

    def value_for(self, level: int) -> Decimal:
        return (self.level1, self.level2, self.level3)[level - 1]

    def crossed_levels(
        self, total_amount: Decimal, already_notified: Collection[int]
    ) -> list[int]:
        """Return levels reached by total_amount that were not notified yet."""

        return [
            level
            for level in ALERT_LEVELS
            if total_amount >= self.value_for(level) and level not in already_notified
        ]

    def highest_exceeded_level(self, total_amount: Decimal) -> int:
        """Return the highest level reached by total_amount, or 0."""

        exceeded = [
            level for level in ALERT_LEVELS if total_amount >= self.value_for(level)
        ]
        return max(exceeded, default=0)


@dataclass(slots=True, frozen=True)
class ReportThresholds:
    """Threshold sets for the granularities that raise alerts."""

    weekly: ThresholdLevels
    monthly: ThresholdLevels

    def for_granularity(self, granularity: Granularity) -> ThresholdLevels | None:
        if granularity == Granularity.WEEKLY:
            return self.weekly
        if granularity == Granularity.MONTHLY:
            return self.monthly
        return None


def build_report_thresholds(settings: Settings) -> ReportThresholds:
    """Validate configured thresholds into a policy object."""

    return ReportThresholds(
        weekly=ThresholdLevels.from_values(
            settings.weekly_alert_thresholds, granularity="weekly"
        ),
        monthly=ThresholdLevels.from_values(
            settings.monthly_alert_thresholds, granularity="monthly"
        ),
    )


@lru_cache(maxsize=1)
def get_report_thresholds() -> ReportThresholds:
    """Return cached thresholds for the current process."""

    return build_report_thresholds(get_settings())
