"""Message assembly for threshold alerts and scheduled summaries."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from spend_reports.application.ports.notifications import ReportNotification
from spend_reports.domain.money import format_yen
from spend_reports.domain.periods import Granularity, PeriodKey
from spend_reports.domain.reports import PeriodReport
from spend_reports.domain.thresholds import ThresholdLevels

NO_USAGE_TEXT = "利用なし"


def _format_day(value: date) -> str:
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"


def format_period(key: PeriodKey) -> str:
    """Render the covered dates, e.g. ``2024/03/08 〜 2024/03/14``."""

    start, end = key.bounds
    if start == end:
        return _format_day(start)
    return f"{_format_day(start)} 〜 {_format_day(end)}"


def period_label(key: PeriodKey) -> str:
    if key.granularity == Granularity.DAILY:
        return f"{key.year}年{key.month}月{key.day}日"
    if key.granularity == Granularity.WEEKLY:
        return f"{key.year}年{key.month}月 第{key.term}週"
    return f"{key.year}年{key.month}月"


def average_text(report: PeriodReport) -> str:
    if report.total_count <= 0:
        return NO_USAGE_TEXT
    average = report.total_amount / Decimal(report.total_count)
    return f"平均支出: {format_yen(average)}/件"


class ReportNotificationBuilder:
    """Build notification payloads from period reports."""

    def alert(
        self, report: PeriodReport, *, level: int, thresholds: ThresholdLevels
    ) -> ReportNotification:
        """Return the alert message for the highest newly crossed level."""

        if report.key.granularity == Granularity.WEEKLY:
            kind = "週次支出アラート"
        else:
            kind = "月次支出アラート"
        threshold = thresholds.value_for(level)
        return ReportNotification(
            title=f"{kind} (レベル{level}) - {period_label(report.key)}",
            period=format_period(report.key),
            total_amount=report.total_amount,
            total_count=report.total_count,
            alert_level=level,
            additional_info=f"しきい値 {format_yen(threshold)} を超過しました",
        )

    def scheduled(
        self, report: PeriodReport, *, thresholds: ThresholdLevels | None = None
    ) -> ReportNotification:
        """Return the final summary message of a closed period."""

        titles = {
            Granularity.DAILY: "デイリーレポート",
            Granularity.WEEKLY: "ウィークリーレポート",
            Granularity.MONTHLY: "マンスリーレポート",
        }
        info_lines = [average_text(report)]
        if thresholds is not None:
            info_lines.append(self._threshold_summary(report, thresholds))
        return ReportNotification(
            title=f"{period_label(report.key)} {titles[report.key.granularity]}",
            period=format_period(report.key),
            total_amount=report.total_amount,
            total_count=report.total_count,
            additional_info="\n".join(info_lines),
        )

    @staticmethod
    def _threshold_summary(report: PeriodReport, thresholds: ThresholdLevels) -> str:
        level = thresholds.highest_exceeded_level(report.total_amount)
        if level == 0:
            return f"しきい値内 (レベル1: {format_yen(thresholds.level1)})"
        threshold = thresholds.value_for(level)
        excess = report.total_amount - threshold
        return (
            f"レベル{level} しきい値 {format_yen(threshold)} を "
            f"{format_yen(excess)} 超過"
        )
