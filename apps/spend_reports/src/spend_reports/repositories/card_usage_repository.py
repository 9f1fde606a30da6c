"""SQLAlchemy persistence for card usages."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spend_reports.application.ports.repositories import UsageRecord
from spend_reports.db.models.card_usage import CardUsage


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CardUsageRepository:
    """Stores card usages and serves bulk reads for recalculation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(
        self,
        *,
        amount: Decimal,
        occurred_at: datetime,
        where_to_use: str = "",
        card_name: str = "",
    ) -> CardUsage:
        """Persist one usage and return it with generated id."""

        usage = CardUsage(
            amount=amount,
            occurred_at=_to_utc(occurred_at),
            where_to_use=where_to_use,
            card_name=card_name,
            is_active=True,
        )
        async with self._session_factory() as session:
            session.add(usage)
            await session.commit()
        return usage

    async def get(self, usage_id: UUID) -> CardUsage | None:
        """Fetch one usage by id."""

        async with self._session_factory() as session:
            usage = await session.get(CardUsage, usage_id)
        if usage is not None:
            usage.occurred_at = _to_utc(usage.occurred_at)
        return usage

    async def update(
        self,
        usage_id: UUID,
        *,
        amount: Decimal | None = None,
        is_active: bool | None = None,
    ) -> CardUsage | None:
        """Change amount and/or active state; return None when absent."""

        async with self._session_factory() as session:
            usage = await session.get(CardUsage, usage_id)
            if usage is None:
                return None
            if amount is not None:
                usage.amount = amount
            if is_active is not None:
                usage.is_active = is_active
            await session.commit()
            await session.refresh(usage)
        usage.occurred_at = _to_utc(usage.occurred_at)
        return usage

    async def list_between(
        self, start: datetime, end: datetime, *, include_inactive: bool = False
    ) -> list[CardUsage]:
        """Return usages with start <= occurred_at < end, oldest first."""

        statement = select(CardUsage).where(
            CardUsage.occurred_at >= _to_utc(start),
            CardUsage.occurred_at < _to_utc(end),
        )
        if not include_inactive:
            statement = statement.where(CardUsage.is_active.is_(True))
        statement = statement.order_by(CardUsage.occurred_at, CardUsage.id)

        async with self._session_factory() as session:
            usages = list((await session.scalars(statement)).all())
        for usage in usages:
            usage.occurred_at = _to_utc(usage.occurred_at)
        return usages

    async def query_by_date_range(
        self, start: datetime, end: datetime
    ) -> list[UsageRecord]:
        """Return active usages with start <= occurred_at < end."""

        usages = await self.list_between(start, end)
        return [
            UsageRecord(
                document_path=usage.document_path,
                amount=Decimal(usage.amount),
                occurred_at=_to_utc(usage.occurred_at),
            )
            for usage in usages
        ]
