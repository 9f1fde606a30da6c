from decimal import Decimal

from spend_reports.domain.periods import daily_key, monthly_key, weekly_key
from spend_reports.domain.reports import PeriodReport
from spend_reports.domain.thresholds import ThresholdLevels
from spend_reports.reporting.report_notifications import (
    ReportNotificationBuilder,
    format_period,
    period_label,
)

WEEKLY_LEVELS = ThresholdLevels.from_values([1000, 5000, 10000], granularity="weekly")


def test_format_period_renders_single_day_and_ranges() -> None:
    assert format_period(daily_key(2024, 3, 8)) == "2024/03/08"
    assert format_period(weekly_key(2024, 3, 5)) == "2024/03/29 〜 2024/03/31"
    assert format_period(monthly_key(2024, 2)) == "2024/02/01 〜 2024/02/29"


def test_period_labels() -> None:
    assert period_label(daily_key(2024, 3, 8)) == "2024年3月8日"
    assert period_label(weekly_key(2024, 3, 2)) == "2024年3月 第2週"
    assert period_label(monthly_key(2024, 3)) == "2024年3月"


def test_alert_message_names_level_and_threshold() -> None:
    report = PeriodReport(
        key=weekly_key(2024, 3, 2), total_amount=Decimal("6000"), total_count=2
    )

    notification = ReportNotificationBuilder().alert(
        report, level=2, thresholds=WEEKLY_LEVELS
    )

    assert notification.title == "週次支出アラート (レベル2) - 2024年3月 第2週"
    assert notification.alert_level == 2
    assert notification.additional_info == "しきい値 5,000円 を超過しました"


def test_scheduled_summary_for_empty_daily_report() -> None:
    report = PeriodReport(key=daily_key(2024, 3, 8))

    notification = ReportNotificationBuilder().scheduled(report)

    assert notification.title == "2024年3月8日 デイリーレポート"
    assert notification.alert_level == 0
    assert notification.additional_info == "利用なし"


def test_scheduled_summary_reports_budget_state() -> None:
    builder = ReportNotificationBuilder()
    within = PeriodReport(
        key=weekly_key(2024, 3, 1), total_amount=Decimal("900"), total_count=2
    )
    above = PeriodReport(
        key=weekly_key(2024, 3, 1), total_amount=Decimal("12500"), total_count=5
    )

    within_info = builder.scheduled(within, thresholds=WEEKLY_LEVELS).additional_info
    above_info = builder.scheduled(above, thresholds=WEEKLY_LEVELS).additional_info

    assert within_info == "平均支出: 450円/件\nしきい値内 (レベル1: 1,000円)"
    assert above_info == (
        "平均支出: 2,500円/件\nレベル3 しきい値 10,000円 を 2,500円 超過"
    )
