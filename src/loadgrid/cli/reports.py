"""``loadgrid reports`` and ``loadgrid remove-report`` — manage run reports."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from loadgrid._internal.errors import ConnectionLostError, ValidationError
from loadgrid.cli.render import make_reports_table
from loadgrid.cli.session import COORDINATOR_HELP, LEGACY_HELP, SYNC_TIMEOUT, VERBOSE_HELP, console, run_session

if TYPE_CHECKING:
    from loadgrid.client.context import ClientContext


def reports_cmd(
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """List the reports of completed runs."""

    async def _body(ctx: ClientContext) -> None:
        reports = ctx.mirror.reports
        if not reports:
            console.print("[yellow]No reports.[/yellow]")
            return
        console.print(make_reports_table(reports, ctx.policy))

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)


async def _remove(ctx: ClientContext, report_id: str) -> None:
    if ctx.mirror.report(report_id) is None:
        msg = f"No report with id {report_id!r}"
        raise ValidationError(msg)

    if not ctx.client.remove_report(report_id):
        msg = "Coordinator connection lost before the report could be removed"
        raise ConnectionLostError(msg)

    await ctx.wait_for(
        lambda state: state.synced and state.report(report_id) is None,
        timeout=SYNC_TIMEOUT,
    )
    console.print(f"[green]Removed report {report_id}.[/green]")


def remove_report_cmd(
    report_id: str = typer.Argument(..., help="Id of the report to remove."),
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """Remove a report from the coordinator."""

    async def _body(ctx: ClientContext) -> None:
        await _remove(ctx, report_id)

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)
