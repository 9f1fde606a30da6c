"""API dependency providers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spend_reports.application.ports.notifications import Notifier
from spend_reports.core.settings import get_settings
from spend_reports.core.wiring import Services, build_notifier, build_services
from spend_reports.db.session import get_session_factory
from spend_reports.domain.thresholds import get_report_thresholds
from spend_reports.repositories.period_report_repository import (
    PeriodReportRepository,
)
from spend_reports.services.card_usage_service import CardUsageService
from spend_reports.services.recalculation_service import RecalculationService
from spend_reports.services.scheduling_service import SchedulingService


def get_notifier() -> Notifier:
    """Build the Discord notifier from settings."""

    return build_notifier(get_settings())


def get_services(
    session_factory: Annotated[
        async_sessionmaker[AsyncSession], Depends(get_session_factory)
    ],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> Services:
    """Wire services for one request."""

    return build_services(
        settings=get_settings(),
        session_factory=session_factory,
        notifier=notifier,
        thresholds=get_report_thresholds(),
    )


def get_report_store(
    services: Annotated[Services, Depends(get_services)],
) -> PeriodReportRepository:
    return services.report_store


def get_card_usage_service(
    services: Annotated[Services, Depends(get_services)],
) -> CardUsageService:
    return services.card_usages


def get_scheduling_service(
    services: Annotated[Services, Depends(get_services)],
) -> SchedulingService:
    return services.scheduling


def get_recalculation_service(
    services: Annotated[Services, Depends(get_services)],
) -> RecalculationService:
    return services.recalculation
