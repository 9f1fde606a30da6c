"""Discord webhook delivery of report and error notifications."""

from __future__ import annotations

import enum
import json
import logging
import traceback
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from spend_reports.application.ports.notifications import ReportNotification
from spend_reports.core.settings import Settings
from spend_reports.domain.errors import DomainError
from spend_reports.domain.money import format_yen

logger = logging.getLogger(__name__)

WEBHOOK_URL_PREFIX = "https://discord.com/api/webhooks/"
ACCEPTED_STATUS_CODES = frozenset({200, 204})
MAX_TRACE_LENGTH = 1000

DAILY_COLOR = 3066993
WEEKLY_COLOR = 3447003
MONTHLY_COLOR = 10181046
ERROR_COLOR = 15158332
ALERT_STYLES: dict[int, tuple[int, str]] = {
    1: (16766720, "🔔"),
    2: (15548997, "⚠️"),
    3: (15158332, "🚨"),
}


class NotificationChannel(enum.StrEnum):
    """Discord channels, one webhook each."""

    ALERT_WEEKLY = "alert_weekly"
    ALERT_MONTHLY = "alert_monthly"
    REPORT_DAILY = "report_daily"
    REPORT_WEEKLY = "report_weekly"
    REPORT_MONTHLY = "report_monthly"
    ERROR_LOG = "error_log"


@dataclass(slots=True, frozen=True)
class DiscordWebhooks:
    """Webhook URL per notification channel."""

    alert_weekly: str = ""
    alert_monthly: str = ""
    report_daily: str = ""
    report_weekly: str = ""
    report_monthly: str = ""
    error_log: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscordWebhooks:
        return cls(
            alert_weekly=settings.discord_alert_weekly_webhook_url,
            alert_monthly=settings.discord_alert_monthly_webhook_url,
            report_daily=settings.discord_report_daily_webhook_url,
            report_weekly=settings.discord_report_weekly_webhook_url,
            report_monthly=settings.discord_report_monthly_webhook_url,
            error_log=settings.discord_logging_webhook_url,
        )

    def url_for(self, channel: NotificationChannel) -> str:
        return str(getattr(self, channel.value)).strip()


def _report_embed(
    notification: ReportNotification,
    *,
    icon: str,
    color: int,
    caption: str,
    period_label: str,
) -> dict[str, Any]:
    fields: list[dict[str, Any]] = [
        {"name": period_label, "value": notification.period or "不明", "inline": False},
        {"name": "利用件数", "value": f"{notification.total_count}件", "inline": False},
    ]
    if notification.additional_info:
        fields.append(
            {"name": "補足情報", "value": notification.additional_info, "inline": False}
        )
    return {
        "title": f"{icon} {notification.title}",
        "description": f"# {format_yen(notification.total_amount)}\n{caption}\n-",
        "color": color,
        "fields": fields,
    }


class DiscordNotifier:
    """Notifier posting embeds to Discord webhooks.

    Every method returns False instead of raising when the webhook is not
    configured, the request fails or Discord rejects the payload.
    """

    def __init__(
        self,
        *,
        webhooks: DiscordWebhooks,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("Discord timeout must be greater than zero.")
        self._webhooks = webhooks
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify_daily(self, notification: ReportNotification) -> bool:
        embed = _report_embed(
            notification,
            icon="📅",
            color=DAILY_COLOR,
            caption="デイリー利用合計額",
            period_label="日付",
        )
        return await self._send(NotificationChannel.REPORT_DAILY, [embed])

    async def notify_weekly(self, notification: ReportNotification) -> bool:
        color, icon = ALERT_STYLES.get(notification.alert_level, (WEEKLY_COLOR, "📊"))
        channel = (
            NotificationChannel.ALERT_WEEKLY
            if notification.alert_level > 0
            else NotificationChannel.REPORT_WEEKLY
        )
        embed = _report_embed(
            notification,
            icon=icon,
            color=color,
            caption="ウィークリー利用合計額",
            period_label="期間",
        )
        return await self._send(channel, [embed])

    async def notify_monthly(self, notification: ReportNotification) -> bool:
        color, icon = ALERT_STYLES.get(notification.alert_level, (MONTHLY_COLOR, "📆"))
        channel = (
            NotificationChannel.ALERT_MONTHLY
            if notification.alert_level > 0
            else NotificationChannel.REPORT_MONTHLY
        )
        embed = _report_embed(
            notification,
            icon=icon,
            color=color,
            caption="マンスリー利用合計額",
            period_label="期間",
        )
        return await self._send(channel, [embed])

    async def notify_error(self, error: Exception, context: str) -> bool:
        error_type = error.code if isinstance(error, DomainError) else type(error).__name__
        fields: list[dict[str, Any]] = [
            {"name": "エラーメッセージ", "value": str(error) or "不明なエラー", "inline": False},
            {"name": "エラータイプ", "value": error_type, "inline": True},
            {"name": "コンテキスト", "value": context or "不明", "inline": True},
            {
                "name": "発生時刻",
                "value": datetime.now(tz=UTC).isoformat(),
                "inline": False,
            },
        ]
        if isinstance(error, DomainError) and error.details:
            details_text = json.dumps(error.details, ensure_ascii=False, default=str)
            fields.append(
                {"name": "詳細情報", "value": f"```json\n{details_text}\n```", "inline": False}
            )
        if error.__traceback__ is not None:
            trace = "".join(traceback.format_exception(error))[:MAX_TRACE_LENGTH]
            fields.append(
                {"name": "スタックトレース", "value": f"```\n{trace}\n```", "inline": False}
            )

        embed = {
            "title": f"❌ エラー発生: {error_type}",
            "description": "エラーが検出されました\n-",
            "color": ERROR_COLOR,
            "fields": fields,
        }
        return await self._send(NotificationChannel.ERROR_LOG, [embed])

    async def _send(
        self, channel: NotificationChannel, embeds: list[dict[str, Any]]
    ) -> bool:
        url = self._webhooks.url_for(channel)
        if not url.startswith(WEBHOOK_URL_PREFIX):
            logger.warning(
                "discord_webhook_not_configured", extra={"channel": str(channel)}
            )
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json={"embeds": embeds})
        except httpx.HTTPError:
            logger.exception(
                "discord_request_failed", extra={"channel": str(channel)}
            )
            return False

        if response.status_code in ACCEPTED_STATUS_CODES:
            logger.info("discord_notification_sent", extra={"channel": str(channel)})
            return True

        logger.warning(
            "discord_notification_rejected",
            extra={"channel": str(channel), "status_code": response.status_code},
        )
        return False
