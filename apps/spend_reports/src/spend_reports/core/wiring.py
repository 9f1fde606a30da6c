"""Construction of services from settings for the outer entrypoints."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spend_reports.application.ports.notifications import Notifier
from spend_reports.core.settings import Settings
from spend_reports.domain.thresholds import ReportThresholds, build_report_thresholds
from spend_reports.infrastructure.discord_notifier import (
    DiscordNotifier,
    DiscordWebhooks,
)
from spend_reports.repositories.card_usage_repository import CardUsageRepository
from spend_reports.repositories.period_report_repository import (
    PeriodReportRepository,
)
from spend_reports.services.aggregation_service import AggregationService
from spend_reports.services.card_usage_service import CardUsageService
from spend_reports.services.recalculation_service import RecalculationService
from spend_reports.services.scheduling_service import SchedulingService


@dataclass(slots=True, frozen=True)
class Services:
    """Services sharing one store, notifier and threshold policy."""

    report_store: PeriodReportRepository
    card_usages: CardUsageService
    aggregation: AggregationService
    scheduling: SchedulingService
    recalculation: RecalculationService


def build_notifier(settings: Settings) -> DiscordNotifier:
    return DiscordNotifier(
        webhooks=DiscordWebhooks.from_settings(settings),
        timeout_seconds=settings.discord_timeout_seconds,
    )


def build_services(
    *,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier | None = None,
    thresholds: ReportThresholds | None = None,
) -> Services:
    """Wire repositories and services for one entrypoint invocation."""

    resolved_notifier = notifier or build_notifier(settings)
    resolved_thresholds = thresholds or build_report_thresholds(settings)
    report_store = PeriodReportRepository(session_factory)
    card_usages = CardUsageRepository(session_factory)
    aggregation = AggregationService(
        report_store=report_store,
        notifier=resolved_notifier,
        thresholds=resolved_thresholds,
    )
    return Services(
        report_store=report_store,
        card_usages=CardUsageService(
            card_usage_repository=card_usages,
            aggregation_service=aggregation,
        ),
        aggregation=aggregation,
        scheduling=SchedulingService(
            report_store=report_store,
            notifier=resolved_notifier,
            thresholds=resolved_thresholds,
        ),
        recalculation=RecalculationService(
            usage_source=card_usages,
            aggregation_service=aggregation,
            notifier=resolved_notifier,
            batch_size=settings.recalculation_batch_size,
            pause_seconds=settings.recalculation_pause_seconds,
            max_range_days=settings.recalculation_max_range_days,
        ),
    )
