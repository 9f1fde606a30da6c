"""MCP tools that proxy the spend reports HTTP API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx
from fastmcp import FastMCP

from spend_reports.core.settings import get_settings

logger = logging.getLogger(__name__)

GranularityName = Literal["daily", "weekly", "monthly"]
QueryParams = Mapping[str, str | int | float | bool | None]


class APIRequester(Protocol):
    """Performs one API call and returns the decoded JSON body."""

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: QueryParams | None = None,
        json_body: Mapping[str, object] | None = None,
    ) -> object: ...


class APIRequestError(RuntimeError):
    """Non-2xx answer from the API, carrying its contract error fields."""

    def __init__(
        self,
        status_code: int,
        *,
        code: str | None = None,
        message: str = "",
        details: Any = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(self._describe(message))

    def _describe(self, message: str) -> str:
        if self.code is None:
            suffix = f": {message}" if message else "."
            return f"API request failed with status {self.status_code}{suffix}"
        text = f"API error {self.code}: {message}"
        if self.details is not None:
            text += f" | details={self.details}"
        return text

    @classmethod
    def from_response(cls, response: httpx.Response) -> APIRequestError:
        try:
            payload = response.json()
        except ValueError:
            return cls(response.status_code, message=response.text.strip())

        if (
            isinstance(payload, Mapping)
            and isinstance(payload.get("code"), str)
            and isinstance(payload.get("message"), str)
        ):
            return cls(
                response.status_code,
                code=payload["code"],
                message=payload["message"],
                details=payload.get("details"),
            )
        return cls(response.status_code, message=str(payload))


@dataclass(slots=True, frozen=True)
class HTTPAPIRequester:
    """Sends tool calls to the spend reports API with httpx."""

    base_url: str
    timeout_seconds: float

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: QueryParams | None = None,
        json_body: Mapping[str, object] | None = None,
    ) -> object:
        async with httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            timeout=self.timeout_seconds,
        ) as client:
            response = await client.request(
                method,
                path,
                params=params,
                json=dict(json_body) if json_body is not None else None,
            )

        if not response.is_success:
            logger.warning(
                "mcp_api_request_failed",
                extra={"path": path, "status_code": response.status_code},
            )
            raise APIRequestError.from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            raise APIRequestError(
                response.status_code, message="response body is not JSON"
            ) from exc


def create_mcp_server(
    *,
    api_base_url: str | None = None,
    timeout_seconds: float | None = None,
    requester: APIRequester | None = None,
) -> FastMCP:
    """Create the MCP server; each tool maps to one REST endpoint."""

    settings = get_settings()
    timeout = (
        settings.mcp_api_timeout_seconds if timeout_seconds is None else timeout_seconds
    )
    if timeout <= 0:
        raise ValueError("MCP API timeout must be greater than zero.")

    mcp = FastMCP(name="Spend Reports")
    api_requester: APIRequester = requester or HTTPAPIRequester(
        base_url=api_base_url or settings.mcp_api_base_url,
        timeout_seconds=timeout,
    )

    @mcp.tool
    async def get_daily_report(year: int, month: int, day: int) -> object:
        """Return totals and flags of one day."""

        return await api_requester.request(
            "GET", f"/v1/reports/daily/{year}/{month}/{day}"
        )

    @mcp.tool
    async def get_weekly_report(year: int, month: int, term: int) -> object:
        """Return totals and alert flags of one term (days 1-7, 8-14, ...)."""

        return await api_requester.request(
            "GET", f"/v1/reports/weekly/{year}/{month}/{term}"
        )

    @mcp.tool
    async def get_monthly_report(year: int, month: int) -> object:
        """Return totals and alert flags of one month."""

        return await api_requester.request(
            "GET", f"/v1/reports/monthly/{year}/{month}"
        )

    @mcp.tool
    async def list_month_reports(
        year: int, month: int, granularity: GranularityName = "daily"
    ) -> object:
        """List stored reports of one granularity for a month."""

        return await api_requester.request(
            "GET", f"/v1/months/{year}/{month}/reports/{granularity}"
        )

    @mcp.tool
    async def record_card_usage(
        amount: str,
        occurred_at: str | None = None,
        where_to_use: str | None = None,
        card_name: str | None = None,
    ) -> object:
        """Register a card usage and update its reports."""

        payload: dict[str, object] = {"amount": amount}
        if occurred_at is not None:
            payload["occurred_at"] = occurred_at
        if where_to_use is not None:
            payload["where_to_use"] = where_to_use
        if card_name is not None:
            payload["card_name"] = card_name

        return await api_requester.request(
            "POST",
            "/v1/card-usages",
            json_body=payload,
        )

    @mcp.tool
    async def get_card_usage(usage_id: str) -> object:
        """Return one card usage by id."""

        return await api_requester.request("GET", f"/v1/card-usages/{usage_id}")

    @mcp.tool
    async def list_card_usages(
        start_date: str,
        end_date: str,
        include_inactive: bool = False,
    ) -> object:
        """List card usages between two dates (YYYY-MM-DD, Tokyo time)."""

        return await api_requester.request(
            "GET",
            "/v1/card-usages",
            params={
                "start_date": start_date,
                "end_date": end_date,
                "include_inactive": include_inactive,
            },
        )

    @mcp.tool
    async def run_daily_schedule(as_of: str | None = None) -> object:
        """Send summaries of the periods that closed the day before as_of."""

        payload: dict[str, object] = {}
        if as_of is not None:
            payload["as_of"] = as_of
        return await api_requester.request(
            "POST",
            "/v1/schedules/daily",
            json_body=payload,
        )

    @mcp.tool
    async def send_report(
        granularity: GranularityName,
        year: int,
        month: int,
        day: int | None = None,
        term: int | None = None,
        as_of: str | None = None,
    ) -> object:
        """Send one closed period's summary unless it was already sent."""

        payload: dict[str, object] = {"year": year, "month": month}
        if day is not None:
            payload["day"] = day
        if term is not None:
            payload["term"] = term
        if as_of is not None:
            payload["as_of"] = as_of

        return await api_requester.request(
            "POST",
            f"/v1/reports/{granularity}/send",
            json_body=payload,
        )

    @mcp.tool
    async def recalculate_reports(
        start_date: str,
        end_date: str,
        granularities: list[GranularityName] | None = None,
        dry_run: bool = True,
        executed_by: str = "mcp",
    ) -> object:
        """Rebuild reports for a date range; dry run by default."""

        payload: dict[str, object] = {
            "start_date": start_date,
            "end_date": end_date,
            "dry_run": dry_run,
            "executed_by": executed_by,
        }
        if granularities is not None:
            payload["granularities"] = list(granularities)

        return await api_requester.request(
            "POST",
            "/v1/recalculations",
            json_body=payload,
        )

    return mcp


def main() -> None:
    """Run the MCP server over stdio."""

    create_mcp_server().run()


if __name__ == "__main__":
    main()
