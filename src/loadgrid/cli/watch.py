"""``loadgrid watch`` — live terminal dashboard of the coordinator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import typer
from rich.live import Live

from loadgrid.cli.render import make_dashboard
from loadgrid.cli.session import COORDINATOR_HELP, LEGACY_HELP, VERBOSE_HELP, console, run_session

if TYPE_CHECKING:
    from loadgrid.client.context import ClientContext


async def _watch(ctx: ClientContext, *, once: bool) -> None:
    mirror = ctx.mirror
    if once:
        console.print(make_dashboard(mirror.snapshot(), ctx.policy))
        return

    with Live(make_dashboard(mirror.snapshot(), ctx.policy), console=console, refresh_per_second=2) as live:
        unsubscribe = mirror.subscribe(
            lambda state: live.update(make_dashboard(state.snapshot(), ctx.policy)),
        )
        try:
            # Runs until interrupted
            await asyncio.Event().wait()
        finally:
            unsubscribe()


def watch_cmd(
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    once: bool = typer.Option(False, "--once", help="Print the current state once and exit."),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """Show fleet telemetry, the active run and reports as they change."""

    async def _body(ctx: ClientContext) -> None:
        await _watch(ctx, once=once)

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)
