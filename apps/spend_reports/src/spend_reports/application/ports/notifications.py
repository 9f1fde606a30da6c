"""Notification port and message payload."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ReportNotification:
    """Channel independent content of one report or alert message.

    ``alert_level`` is 0 for scheduled summaries and 1-3 for threshold alerts.
    """

    title: str
    period: str
    total_amount: Decimal
    total_count: int
    alert_level: int = 0
    additional_info: str | None = None


class Notifier(Protocol):
    """Port for outbound report delivery.

    Each method returns True when the channel accepted the message.
    """

    async def notify_daily(self, notification: ReportNotification) -> bool: ...

    async def notify_weekly(self, notification: ReportNotification) -> bool: ...

    async def notify_monthly(self, notification: ReportNotification) -> bool: ...

    async def notify_error(self, error: Exception, context: str) -> bool: ...
