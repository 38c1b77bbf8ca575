"""Rich renderables for coordinator state."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from loadgrid.metrics.classifier import (
    DEFAULT_POLICY,
    classify,
    format_metric,
    format_value,
    is_alert,
    sparkline,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rich.console import RenderableType

    from loadgrid._internal.types import Stats
    from loadgrid.metrics.classifier import AlertPolicy
    from loadgrid.protocol.models import Report, Run, ScriptError
    from loadgrid.state.mirror import MirrorSnapshot


def remaining_seconds(run: Run) -> int:
    """Whole seconds left in the run's current phase, truncated."""
    return int(run.remaining_ms / 1000)


def describe_run(run: Run | None) -> str:
    """One-line run status, ``"idle"`` when nothing is running."""
    if run is None:
        return "idle"
    return f"{run.name} ({run.state}, {remaining_seconds(run)}s remaining)"


def describe_script_error(error: ScriptError | None) -> str:
    if error is None:
        return "-"
    return f"line {error.line}: {error.description}"


def _styled(text: str, alert: bool) -> str:
    text = escape(text)
    return f"[bold red]{text}[/bold red]" if alert else text


def make_telemetry_table(stats: Stats, policy: AlertPolicy = DEFAULT_POLICY) -> Table:
    """Build a table with the latest sample and recent trend of every series.

    Alerting values are shown in red.
    """
    table = Table(title="Telemetry", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Trend", style="cyan", no_wrap=True)

    for key in sorted(stats):
        samples = stats[key]
        table.add_row(
            classify(key, policy).display_name,
            _styled(format_metric(key, samples, policy), is_alert(key, samples, policy)),
            sparkline(samples),
        )
    return table


def _format_maximums(report: Report, policy: AlertPolicy) -> str:
    parts: list[str] = []
    for key in sorted(report.maximums):
        value = report.maximums[key]
        text = f"{classify(key, policy).display_name}: {format_value(key, value, policy)}"
        parts.append(_styled(text, is_alert(key, [value], policy)))
    return "\n".join(parts) or "-"


def report_has_alert(report: Report, policy: AlertPolicy = DEFAULT_POLICY) -> bool:
    """Return True if any maximum of *report* breaches its severity rule."""
    if report.script_error is not None:
        return True
    return any(is_alert(key, [value], policy) for key, value in report.maximums.items())


def make_reports_table(reports: Sequence[Report], policy: AlertPolicy = DEFAULT_POLICY) -> Table:
    """Build a table listing *reports* in the order they were recorded."""
    table = Table(title="Reports", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("", width=1)
    table.add_column("Id")
    table.add_column("Name", style="bold")
    table.add_column("Maximums")
    table.add_column("Script Error")
    table.add_column("Results")

    for report in reports:
        links = [url for url in (report.result.csv_url, report.result.cw_url) if url]
        table.add_row(
            "[bold red]![/bold red]" if report_has_alert(report, policy) else "",
            report.id,
            escape(report.name),
            _format_maximums(report, policy),
            escape(describe_script_error(report.script_error)),
            "\n".join(links) or "-",
        )
    return table


def make_status_panel(snapshot: MirrorSnapshot) -> Panel:
    """Build the header panel with the fleet size and the active run."""
    error = snapshot.last_script_error
    return Panel(
        f"[bold]Generators:[/bold]   {snapshot.generator_count}\n"
        f"[bold]Run:[/bold]          {escape(describe_run(snapshot.run))}\n"
        f"[bold]Script error:[/bold] {_styled(describe_script_error(error), error is not None)}",
        title="LoadGrid",
        border_style="cyan",
    )


def make_dashboard(snapshot: MirrorSnapshot, policy: AlertPolicy = DEFAULT_POLICY) -> RenderableType:
    """Compose the full live view of one mirror snapshot."""
    return Group(
        make_status_panel(snapshot),
        make_telemetry_table(snapshot.stats, policy),
        make_reports_table(snapshot.reports, policy),
    )
