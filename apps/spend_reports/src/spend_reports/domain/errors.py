"""Domain exceptions shared by services, API and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, ClassVar


def compose_error_message(*, cause: str, action: str) -> str:
    """Build a user-facing error message with cause and corrective action."""

    return f"Cause: {cause} Action: {action}"


@dataclass(slots=True)
class DomainError(Exception):
    """Base exception for predictable domain failures."""

    code: str
    message: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class _CatalogError(DomainError):
    """Domain error whose code, status and default wording are fixed per class."""

    CODE: ClassVar[str]
    STATUS: ClassVar[HTTPStatus]
    CAUSE: ClassVar[str]
    ACTION: ClassVar[str]

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=self.CODE,
            message=message
            or compose_error_message(cause=self.CAUSE, action=self.ACTION),
            status_code=self.STATUS,
            details=details or {},
        )


class InvalidRequestError(_CatalogError):
    CODE = "INVALID_REQUEST"
    STATUS = HTTPStatus.BAD_REQUEST
    CAUSE = "Request data violates business rules."
    ACTION = "Adjust the input fields and try again."


class ReportNotFoundError(_CatalogError):
    CODE = "REPORT_NOT_FOUND"
    STATUS = HTTPStatus.NOT_FOUND
    CAUSE = "No report exists for the requested period."
    ACTION = "Check the period values or record a card usage first."


class UsageNotFoundError(_CatalogError):
    CODE = "CARD_USAGE_NOT_FOUND"
    STATUS = HTTPStatus.NOT_FOUND
    CAUSE = "Card usage cannot be resolved."
    ACTION = "Provide the id of an existing card usage."


class ConcurrentUpdateError(_CatalogError):
    """A compare-and-swap write lost against another writer."""

    CODE = "CONCURRENT_UPDATE"
    STATUS = HTTPStatus.CONFLICT
    CAUSE = "The report was modified by another writer."
    ACTION = "Reload the report and retry the operation."


class ThresholdConfigurationError(_CatalogError):
    """Alert thresholds are missing or not strictly ascending."""

    CODE = "THRESHOLD_CONFIGURATION_INVALID"
    STATUS = HTTPStatus.INTERNAL_SERVER_ERROR
    CAUSE = "Alert thresholds must be three strictly ascending values."
    ACTION = "Fix the threshold settings and restart the service."


class NotificationDeliveryError(_CatalogError):
    CODE = "NOTIFICATION_DELIVERY_FAILED"
    STATUS = HTTPStatus.BAD_GATEWAY
    CAUSE = "The notification channel did not accept the message."
    ACTION = "Check the webhook configuration and resend the report."
