"""CLI bootstrap for spend-reports."""

import asyncio
import logging
from collections.abc import Awaitable
from datetime import date, datetime
from typing import Optional, TypeVar

import typer

from spend_reports.core.settings import get_settings
from spend_reports.core.wiring import Services, build_services
from spend_reports.db.session import engine, get_session_factory
from spend_reports.domain.errors import DomainError
from spend_reports.domain.money import format_money
from spend_reports.domain.periods import Granularity
from spend_reports.domain.reports import OperationStatus
from spend_reports.services.recalculation_service import RecalculationRequest

app = typer.Typer(help="CLI for card spend reports.")
AS_OF_OPTION = typer.Option(None, "--as-of", formats=["%Y-%m-%d"])
START_OPTION = typer.Option(..., "--start", formats=["%Y-%m-%d"])
END_OPTION = typer.Option(..., "--end", formats=["%Y-%m-%d"])
GRANULARITY_OPTION = typer.Option(None, "--granularity", "-g")
DRY_RUN_OPTION = typer.Option(False, "--dry-run")
EXECUTED_BY_OPTION = typer.Option("cli", "--executed-by")

T = TypeVar("T")


def _build_services() -> Services:
    return build_services(
        settings=get_settings(),
        session_factory=get_session_factory(),
    )


async def _run_and_dispose(operation: Awaitable[T]) -> T:
    """Await one service call, then close pooled connections on the same loop."""
    try:
        return await operation
    finally:
        await engine.dispose()


@app.callback()
def configure(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """Configure process logging."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@app.command("healthcheck")
def healthcheck() -> None:
    """Verify that the CLI entrypoint is available."""
    typer.echo("spend-reports is ready")


@app.command("run-daily-schedule")
def run_daily_schedule(as_of: Optional[datetime] = AS_OF_OPTION) -> None:
    """Send summaries of the periods that closed the day before --as-of."""
    services = _build_services()
    reference: date | None = as_of.date() if as_of is not None else None
    result = asyncio.run(
        _run_and_dispose(services.scheduling.run_daily_schedule(reference))
    )

    typer.echo(f"Closed day: {result.closed_date.isoformat()}")
    for item in result.reports:
        typer.echo(f"{item.granularity.value}: {item.outcome.value} ({item.path})")
    typer.echo(f"Status: {result.status.value}")
    if result.status == OperationStatus.FAILED:
        raise typer.Exit(code=1)


@app.command("recalculate")
def recalculate(
    start: datetime = START_OPTION,
    end: datetime = END_OPTION,
    granularity: Optional[list[Granularity]] = GRANULARITY_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    executed_by: str = EXECUTED_BY_OPTION,
) -> None:
    """Rebuild reports for a date range from stored card usages."""
    services = _build_services()
    request = RecalculationRequest(
        start_date=start.date(),
        end_date=end.date(),
        granularities=tuple(granularity) if granularity else tuple(Granularity),
        dry_run=dry_run,
        executed_by=executed_by,
    )
    try:
        result = asyncio.run(
            _run_and_dispose(services.recalculation.recalculate(request))
        )
    except DomainError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=2) from exc

    typer.echo(
        f"Found: {result.total_found} | "
        f"Processed: {result.total_processed} | "
        f"Errors: {len(result.errors)}"
    )
    if result.dry_run:
        for projection in result.projections:
            typer.echo(
                f"{projection.path}: {projection.count} usages, "
                f"{format_money(projection.total_amount)} yen"
            )
    else:
        for item in result.granularities:
            typer.echo(
                f"{item.value}: created {result.reports_created[item]}, "
                f"updated {result.reports_updated[item]}"
            )
    typer.echo(f"Status: {result.status.value}")
    if not result.success:
        raise typer.Exit(code=1)


def main() -> None:
    """Run the spend-reports CLI application."""
    app()


if __name__ == "__main__":
    main()
