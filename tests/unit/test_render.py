"""Tests for the CLI's rich renderables."""

from __future__ import annotations

from rich.console import Console

from loadgrid.cli.render import (
    describe_run,
    make_dashboard,
    make_reports_table,
    make_telemetry_table,
    remaining_seconds,
    report_has_alert,
)
from loadgrid.protocol.models import Report, ReportResult, Run, ScriptError
from loadgrid.state.mirror import MirrorSnapshot


def _render(renderable) -> str:
    console = Console(width=200, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


class TestDescribeRun:
    def test_idle(self):
        assert describe_run(None) == "idle"

    def test_remaining_truncated(self):
        run = Run(id="r1", name="10k", state="sustain", remaining_ms=5999)
        assert remaining_seconds(run) == 5
        assert describe_run(run) == "10k (sustain, 5s remaining)"


class TestTelemetryTable:
    def test_formats_latest_samples(self):
        text = _render(
            make_telemetry_table(
                {"cpu_percent": [83.7, 10.0], "network_rx_bytes_per_second": [1536], "conn_error_count": [None]}
            )
        )
        assert "Cpu" in text
        assert "83 %" in text
        assert "1.5 KB/s" in text
        assert "Conn" in text
        assert "-" in text

    def test_trend_column(self):
        text = _render(make_telemetry_table({"cpu_percent": [90, 50, 10]}))
        assert "Trend" in text
        assert "▁▅█" in text


class TestReportsTable:
    def test_lists_reports(self):
        reports = [
            Report(id="r1", name="first", maximums={"cpu_percent": 40}, result=ReportResult(csv_url="http://x/1.csv")),
            Report(id="r2", name="[second]"),
        ]
        text = _render(make_reports_table(reports))
        assert "first" in text
        assert "[second]" in text
        assert "http://x/1.csv" in text
        assert "Cpu: 40 %" in text

    def test_alert_flags(self):
        assert report_has_alert(Report(id="a", name="a", maximums={"cpu_percent": 95}))
        assert report_has_alert(Report(id="a", name="a", script_error=ScriptError(description="x", line=1)))
        assert not report_has_alert(Report(id="a", name="a", maximums={"cpu_percent": 50}))


def test_dashboard_renders_snapshot():
    snapshot = MirrorSnapshot(
        generator_count=4,
        stats={"active_device_number": [120]},
        run=Run(id="r1", name="10k", state="rampup", remaining_ms=12_000),
        last_script_error=ScriptError(description="undefined function get/2", line=3),
    )
    text = _render(make_dashboard(snapshot))
    assert "Generators:" in text
    assert "10k (rampup, 12s remaining)" in text
    assert "line 3: undefined function get/2" in text
    assert "Active Device" in text
