"""Main Typer application — entry point for the ``loadgrid`` CLI."""

from __future__ import annotations

import typer

from loadgrid import __version__
from loadgrid.cli.abort import abort_cmd
from loadgrid.cli.reports import remove_report_cmd, reports_cmd
from loadgrid.cli.run import run_cmd, start_cmd
from loadgrid.cli.watch import watch_cmd

app = typer.Typer(
    name="loadgrid",
    help="Control and observe a distributed load-testing coordinator.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Start a run and follow it until it ends.")(run_cmd)
app.command("start", help="Start a run from a JSON run plan.")(start_cmd)
app.command("abort", help="Abort the active run.")(abort_cmd)
app.command("reports", help="List reports of completed runs.")(reports_cmd)
app.command("remove-report", help="Remove a report.")(remove_report_cmd)
app.command("watch", help="Live dashboard of fleet telemetry, run and reports.")(watch_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"loadgrid {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LoadGrid — control and observe a distributed load-testing coordinator."""
