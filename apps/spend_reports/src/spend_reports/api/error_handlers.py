"""Exception handlers that render every failure as {code, message, details}."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from spend_reports.domain.errors import (
    ConcurrentUpdateError,
    DomainError,
    compose_error_message,
)

logger = logging.getLogger(__name__)

REPORT_PATH_MARKERS = ("uq_period_reports_path", "period_reports.path")


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=body)


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": str(error.get("msg", "")),
        }
        for error in exc.errors()
    ]


async def handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("domain_error", extra={"code": exc.code, "details": exc.details})
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def handle_validation_error(
    _: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation failures are reported as 400, never 422."""

    return _error_response(
        HTTPStatus.BAD_REQUEST,
        "INVALID_REQUEST",
        compose_error_message(
            cause="Request payload validation failed.",
            action="Fix the listed fields and send the request again.",
        ),
        {"errors": _field_errors(exc)},
    )


async def handle_integrity_error(_: Request, exc: IntegrityError) -> JSONResponse:
    if any(marker in str(exc.orig) for marker in REPORT_PATH_MARKERS):
        conflict = ConcurrentUpdateError()
        return _error_response(conflict.status_code, conflict.code, conflict.message)

    logger.error("integrity_error", extra={"error": str(exc.orig)})
    return _error_response(
        HTTPStatus.CONFLICT,
        "PERSISTENCE_CONFLICT",
        compose_error_message(
            cause="A stored record conflicts with this request.",
            action="Reload the affected resource and retry.",
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_request_error",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )
    return _error_response(
        HTTPStatus.INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        compose_error_message(
            cause="An unexpected internal error occurred.",
            action="Retry later; the failure has been logged.",
        ),
        {"error_type": type(exc).__name__},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the handlers above to an application."""

    app.add_exception_handler(DomainError, cast(Any, handle_domain_error))
    app.add_exception_handler(
        RequestValidationError, cast(Any, handle_validation_error)
    )
    app.add_exception_handler(IntegrityError, cast(Any, handle_integrity_error))
    app.add_exception_handler(Exception, handle_unexpected_error)
