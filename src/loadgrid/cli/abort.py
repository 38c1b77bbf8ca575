"""``loadgrid abort`` — abort the active run."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from loadgrid._internal.errors import ConnectionLostError
from loadgrid.cli.render import describe_run
from loadgrid.cli.session import COORDINATOR_HELP, LEGACY_HELP, SYNC_TIMEOUT, VERBOSE_HELP, console, run_session

if TYPE_CHECKING:
    from loadgrid.client.context import ClientContext


async def _abort(ctx: ClientContext, *, wait: bool) -> None:
    run = ctx.mirror.run
    if run is None:
        console.print("[yellow]No run is active.[/yellow]")
        return

    if not ctx.client.abort_run():
        msg = "Coordinator connection lost before the abort could be sent"
        raise ConnectionLostError(msg)
    console.print(f"Abort requested for {describe_run(run)}")

    if wait:
        await ctx.wait_for(
            lambda state: state.synced and (state.run is None or state.run.id != run.id),
            timeout=SYNC_TIMEOUT,
        )
        console.print("[green]Run aborted.[/green]")


def abort_cmd(
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    wait: bool = typer.Option(False, "--wait", "-w", help="Wait until the coordinator clears the run."),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """Abort the run currently executing on the coordinator."""

    async def _body(ctx: ClientContext) -> None:
        await _abort(ctx, wait=wait)

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)
