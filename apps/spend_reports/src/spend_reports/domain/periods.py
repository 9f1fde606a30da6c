"""Period resolution helpers based on fixed Tokyo timezone.

A month is split into fixed seven-day terms: days 1-7 are term 1, days 8-14
term 2 and so on. The last term of a month may be shorter than seven days.
Terms restart every month and are unrelated to ISO weeks.
"""

from __future__ import annotations

import calendar
import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from spend_reports.domain.errors import InvalidRequestError, compose_error_message

APP_TIMEZONE = ZoneInfo("Asia/Tokyo")
TERM_LENGTH_DAYS = 7


class Granularity(enum.StrEnum):
    """Aggregation granularities maintained for every transaction."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


ALL_GRANULARITIES: tuple[Granularity, ...] = (
    Granularity.DAILY,
    Granularity.WEEKLY,
    Granularity.MONTHLY,
)


def resolve_occurred_at(occurred_at: datetime | None) -> datetime:
    """Return occurred_at value or current Tokyo timestamp when absent."""

    if occurred_at is None:
        return datetime.now(tz=APP_TIMEZONE)
    if occurred_at.tzinfo is None:
        return occurred_at.replace(tzinfo=APP_TIMEZONE)
    return occurred_at.astimezone(APP_TIMEZONE)


def term_for_day(day: int) -> int:
    """Return the one-based term number containing a day of month."""

    return (day - 1) // TERM_LENGTH_DAYS + 1


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def term_count(year: int, month: int) -> int:
    return term_for_day(days_in_month(year, month))


def term_bounds(year: int, month: int, term: int) -> tuple[date, date]:
    """Return inclusive first and last day of one term."""

    first_day = (term - 1) * TERM_LENGTH_DAYS + 1
    last_day = min(term * TERM_LENGTH_DAYS, days_in_month(year, month))
    return date(year, month, first_day), date(year, month, last_day)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return inclusive first and last day of one month."""

    return date(year, month, 1), date(year, month, days_in_month(year, month))


def local_day_start(value: date) -> datetime:
    """Return Tokyo midnight at the start of a calendar day."""

    return datetime(value.year, value.month, value.day, tzinfo=APP_TIMEZONE)


def local_range(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """Return half-open Tokyo datetime range covering both dates inclusively."""

    return local_day_start(start_date), local_day_start(end_date + timedelta(days=1))


@dataclass(slots=True, frozen=True)
class PeriodKey:
    """Identity of one aggregate: granularity plus calendar coordinates."""

    granularity: Granularity
    year: int
    month: int
    day: int | None = None
    term: int | None = None

    @property
    def path(self) -> str:
        """Storage path of the aggregate document."""

        if self.granularity == Granularity.DAILY:
            return f"reports/daily/{self.year:04d}-{self.month:02d}/{self.day:02d}"
        if self.granularity == Granularity.WEEKLY:
            return f"reports/weekly/{self.year:04d}-{self.month:02d}/term{self.term}"
        return f"reports/monthly/{self.year:04d}/{self.month:02d}"

    @property
    def bounds(self) -> tuple[date, date]:
        """Inclusive first and last calendar day covered by the aggregate."""

        if self.granularity == Granularity.DAILY:
            day_value = date(self.year, self.month, self.day or 1)
            return day_value, day_value
        if self.granularity == Granularity.WEEKLY:
            return term_bounds(self.year, self.month, self.term or 1)
        return month_bounds(self.year, self.month)

    def has_ended(self, as_of: date) -> bool:
        """Return whether the last day of the period is before as_of."""

        return self.bounds[1] < as_of


def daily_key(year: int, month: int, day: int) -> PeriodKey:
    """Build a validated daily key."""

    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidRequestError(
            message=compose_error_message(
                cause=f"{year:04d}-{month:02d}-{day:02d} is not a calendar date.",
                action="Use an existing year, month and day.",
            ),
            details={"year": year, "month": month, "day": day},
        ) from exc
    return PeriodKey(Granularity.DAILY, year, month, day=day)


def weekly_key(year: int, month: int, term: int) -> PeriodKey:
    """Build a validated weekly key."""

    _validate_month(year, month)
    available_terms = term_count(year, month)
    if not 1 <= term <= available_terms:
        raise InvalidRequestError(
            message=compose_error_message(
                cause=(
                    f"term {term} does not exist in {year:04d}-{month:02d}, "
                    f"which has {available_terms} terms."
                ),
                action=f"Use a term between 1 and {available_terms}.",
            ),
            details={"year": year, "month": month, "term": term},
        )
    return PeriodKey(Granularity.WEEKLY, year, month, term=term)


def monthly_key(year: int, month: int) -> PeriodKey:
    """Build a validated monthly key."""

    _validate_month(year, month)
    return PeriodKey(Granularity.MONTHLY, year, month)


def _validate_month(year: int, month: int) -> None:
    if not 1 <= month <= 12 or not date.min.year <= year <= date.max.year:
        raise InvalidRequestError(
            message=compose_error_message(
                cause=f"{year}-{month} is not a valid month.",
                action="Use a month between 1 and 12.",
            ),
            details={"year": year, "month": month},
        )


@dataclass(slots=True, frozen=True)
class PeriodInfo:
    """Calendar facts of one Tokyo local date."""

    local_date: date
    term: int
    is_last_day_of_term: bool
    is_last_day_of_month: bool

    @property
    def year(self) -> int:
        return self.local_date.year

    @property
    def month(self) -> int:
        return self.local_date.month

    @property
    def day(self) -> int:
        return self.local_date.day

    @property
    def daily_key(self) -> PeriodKey:
        return PeriodKey(Granularity.DAILY, self.year, self.month, day=self.day)

    @property
    def weekly_key(self) -> PeriodKey:
        return PeriodKey(Granularity.WEEKLY, self.year, self.month, term=self.term)

    @property
    def monthly_key(self) -> PeriodKey:
        return PeriodKey(Granularity.MONTHLY, self.year, self.month)

    @property
    def weekly_bounds(self) -> tuple[date, date]:
        return term_bounds(self.year, self.month, self.term)

    @property
    def monthly_bounds(self) -> tuple[date, date]:
        return month_bounds(self.year, self.month)

    def key_for(self, granularity: Granularity) -> PeriodKey:
        if granularity == Granularity.DAILY:
            return self.daily_key
        if granularity == Granularity.WEEKLY:
            return self.weekly_key
        return self.monthly_key


def resolve_date(value: date) -> PeriodInfo:
    """Compute term membership and period-end flags for a local date."""

    term = term_for_day(value.day)
    _, term_end = term_bounds(value.year, value.month, term)
    return PeriodInfo(
        local_date=value,
        term=term,
        is_last_day_of_term=value == term_end,
        is_last_day_of_month=value.day == days_in_month(value.year, value.month),
    )


def resolve_period(timestamp: datetime) -> PeriodInfo:
    """Resolve the Tokyo calendar period of an instant."""

    return resolve_date(resolve_occurred_at(timestamp).date())
