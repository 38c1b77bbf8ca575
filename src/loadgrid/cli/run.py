"""``loadgrid run`` and ``loadgrid start`` — start a run and follow it to the end."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.live import Live
from rich.markup import escape

from loadgrid._internal.errors import ConnectionLostError, LoadGridError, ValidationError
from loadgrid.cli.render import describe_run, make_reports_table, make_status_panel
from loadgrid.cli.session import (
    COORDINATOR_HELP,
    LEGACY_HELP,
    SYNC_TIMEOUT,
    VERBOSE_HELP,
    console,
    run_session,
)
from loadgrid.planning.builder import TARGET_PROTOCOLS, PlanInputs, parse_params
from loadgrid.protocol.commands import RunPlan

if TYPE_CHECKING:
    from loadgrid.client.context import ClientContext
    from loadgrid.protocol.models import Run
    from loadgrid.state.mirror import StateMirror


def ensure_idle(ctx: ClientContext) -> None:
    """Refuse to start when the fleet is empty or a run is already active.

    Raises:
        ValidationError: If no generator is connected or a run is active.
    """
    mirror = ctx.mirror
    if mirror.generator_count == 0:
        msg = "Must have at least one generator connected"
        raise ValidationError(msg)
    if mirror.run is not None:
        msg = f"Already running {mirror.run.name!r}, please stop the current run first"
        raise ValidationError(msg)


async def start_and_follow(ctx: ClientContext, plan: RunPlan, *, detach: bool) -> None:
    """Start *plan* and wait until its run is over.

    Raises:
        ValidationError: If the plan is invalid.
        ConnectionLostError: If the start command could not be sent or the
            run never showed up.
    """
    mirror = ctx.mirror
    size = sum(block.size or 0 for block in plan.blocks)
    console.print(
        f"Starting [bold]{escape(plan.name)}[/bold]: {size} devices in {plan.opts.ramp_steps} steps "
        f"on {mirror.generator_count} generator(s)",
    )
    if not ctx.client.start_run(plan):
        msg = "Coordinator connection lost before the run could be started"
        raise ConnectionLostError(msg)

    # The run may start and end within one read, so remember it when seen
    seen: list[Run] = []

    def _is_ours(state: StateMirror) -> bool:
        run = state.run
        if run is None or run.name != plan.name:
            return False
        seen[:] = [run]
        return True

    await ctx.wait_for(_is_ours, timeout=SYNC_TIMEOUT)
    run_id = seen[0].id
    console.print(f"[green]Running:[/green] {escape(describe_run(seen[0]))}")
    if detach:
        return

    def _is_over(state: StateMirror) -> bool:
        return state.synced and not _is_ours(state)

    with Live(make_status_panel(mirror.snapshot()), console=console, refresh_per_second=2, transient=True) as live:
        unsubscribe = mirror.subscribe(lambda state: live.update(make_status_panel(state.snapshot())))
        try:
            await ctx.wait_for(_is_over)
        finally:
            unsubscribe()

    console.print("[green]Run finished.[/green]")
    report = mirror.report(run_id)
    if report is not None:
        console.print(make_reports_table([report], ctx.policy))


def run_cmd(
    name: str = typer.Argument(..., help="Name of the run plan."),
    script_file: Path = typer.Argument(
        ...,
        help="Path to the script each device runs.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    target_hosts: str = typer.Option(
        "localhost",
        "--target-hosts",
        "-t",
        help="Target hosts, comma separated.",
    ),
    size: int = typer.Option(
        10_000,
        "--size",
        "-s",
        help="Desired number of devices, rounded down to whole ramp steps.",
    ),
    target_port: int = typer.Option(5000, "--target-port", help="Target port."),
    target_protocol: str = typer.Option(
        "http",
        "--target-protocol",
        help=f"Target protocol: {', '.join(TARGET_PROTOCOLS)}.",
    ),
    script_params: str = typer.Option("{}", "--script-params", help="Script parameters as a JSON object."),
    rampup: int = typer.Option(900, "--rampup", help="Ramp-up duration in seconds."),
    sustain: int = typer.Option(900, "--sustain", help="Sustain duration in seconds."),
    rampdown: int = typer.Option(900, "--rampdown", help="Ramp-down duration in seconds."),
    detach: bool = typer.Option(False, "--detach", help="Return once the run has started."),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """Start a run and follow it until it ends."""
    try:
        inputs = PlanInputs(
            name=name,
            script=script_file.read_text(),
            params=parse_params(script_params),
            hosts=target_hosts,
            port=target_port,
            protocol=target_protocol,
            desired_size=size,
            rampup_seconds=rampup,
            sustain_seconds=sustain,
            rampdown_seconds=rampdown,
        )
    except LoadGridError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print("Connecting...")

    async def _body(ctx: ClientContext) -> None:
        ensure_idle(ctx)
        await start_and_follow(ctx, ctx.build_plan(inputs), detach=detach)

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)


def load_plan_file(path: Path) -> RunPlan:
    """Read and validate a run plan stored as JSON.

    Raises:
        ValidationError: If the file is not valid JSON or not a valid plan.
    """
    try:
        data = json.loads(path.read_text())
    except ValueError as exc:
        msg = f"Plan file is not valid JSON: {exc}"
        raise ValidationError(msg) from exc
    plan = RunPlan.from_dict(data)
    plan.validate()
    return plan


def start_cmd(
    plan_file: Path = typer.Argument(
        ...,
        help="Path to a run plan in its JSON wire shape.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    coordinator: str | None = typer.Option(None, "--coordinator", "-c", help=COORDINATOR_HELP),
    detach: bool = typer.Option(False, "--detach", help="Return once the run has started."),
    legacy: bool = typer.Option(False, "--legacy", help=LEGACY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=VERBOSE_HELP),
) -> None:
    """Start a run from a complete JSON run plan, sent as-is."""
    try:
        plan = load_plan_file(plan_file)
    except LoadGridError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print("Connecting...")

    async def _body(ctx: ClientContext) -> None:
        ensure_idle(ctx)
        await start_and_follow(ctx, plan, detach=detach)

    run_session(coordinator, legacy=legacy, verbose=verbose, body=_body)
