"""End-to-end tests for the LoadGrid CLI."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from loadgrid import __version__
from loadgrid.cli.app import app

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import CoordinatorStub

runner = CliRunner()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _default_event_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep uvloop out of the test process and the environment out of config."""
    monkeypatch.setattr("loadgrid.cli.session._install_uvloop", lambda: None)
    for name in (
        "LOADGRID_COORDINATOR_URL",
        "LOADGRID_PROTOCOL",
        "LOADGRID_RAMP_MULTIPLIER",
        "LOADGRID_RECONNECT_MULTIPLIER",
        "LOADGRID_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def script_file(tmp_path: Path) -> Path:
    path = tmp_path / "script.exs"
    path.write_text('0..100000 |> Enum.each(fn _ -> get("/") end)\n')
    return path


@pytest.fixture
def plan_file(tmp_path: Path) -> Path:
    plan = {
        "name": "from-file",
        "addresses": [{"host": "localhost", "port": 5000, "protocol": "http"}],
        "blocks": [{"params": {}, "size": 20}],
        "opts": {"ramp_steps": 2, "rampup_step_ms": 1000, "sustain_ms": 5000, "rampdown_step_ms": 1000},
        "script": "get(\"/\")",
    }
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(plan))
    return path


# ---------------------------------------------------------------------------
# Tests: version and help
# ---------------------------------------------------------------------------


def test_version_flag():
    """--version prints version and exits 0."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_version_short_flag():
    """-V also prints version."""
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands():
    """--help shows every command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "start", "abort", "reports", "remove-report", "watch"):
        assert command in result.output


def test_run_help():
    """loadgrid run --help shows plan options."""
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    assert "--target-hosts" in result.output
    assert "--size" in result.output
    assert "--rampup" in result.output


# ---------------------------------------------------------------------------
# Tests: loadgrid run / start
# ---------------------------------------------------------------------------


@pytest.mark.timeout(30)
def test_run_follows_run_to_report(sync_coordinator: CoordinatorStub, script_file: Path):
    """loadgrid run starts a sized plan and prints the finished run's report."""
    sync_coordinator.state["generator_count"] = 2
    sync_coordinator.auto_finish = True
    result = runner.invoke(
        app,
        ["run", "smoke", str(script_file), "-c", sync_coordinator.url, "--size", "95", "--rampup", "10"],
    )
    assert result.exit_code == 0, result.output
    assert "Run finished." in result.output
    assert "Running:" in result.output

    [element] = sync_coordinator.received
    plan = element["start_run"]
    assert plan["name"] == "smoke"
    assert plan["blocks"][0]["size"] == 80
    assert plan["opts"]["ramp_steps"] == 4
    assert plan["opts"]["rampup_step_ms"] == 2500
    assert "Enum.each" in plan["script"]


@pytest.mark.timeout(30)
def test_run_detach(sync_coordinator: CoordinatorStub, script_file: Path):
    """--detach returns as soon as the run shows up."""
    sync_coordinator.state["generator_count"] = 1
    result = runner.invoke(
        app,
        ["run", "bg", str(script_file), "-c", sync_coordinator.url, "--size", "10", "--detach"],
    )
    assert result.exit_code == 0, result.output
    assert "Running:" in result.output
    assert "bg (rampup, 900s remaining)" in result.output
    assert "Run finished." not in result.output


@pytest.mark.timeout(30)
def test_run_without_generators_fails(sync_coordinator: CoordinatorStub, script_file: Path):
    """Starting on an empty fleet is refused before anything is sent."""
    result = runner.invoke(app, ["run", "smoke", str(script_file), "-c", sync_coordinator.url])
    assert result.exit_code == 1
    assert "at least one generator" in result.output
    assert sync_coordinator.received == []


@pytest.mark.timeout(30)
def test_run_while_running_fails(sync_coordinator: CoordinatorStub, script_file: Path):
    """A second run is refused while one is active."""
    sync_coordinator.state.update(
        generator_count=1,
        run={"id": "r9", "name": "busy", "state": "sustain", "remaining_ms": 1000},
    )
    result = runner.invoke(app, ["run", "smoke", str(script_file), "-c", sync_coordinator.url])
    assert result.exit_code == 1
    assert "Already running" in result.output
    assert sync_coordinator.received == []


def test_run_invalid_params(script_file: Path):
    """Bad --script-params are rejected before connecting."""
    result = runner.invoke(app, ["run", "smoke", str(script_file), "--script-params", "[1]"])
    assert result.exit_code == 1
    assert "JSON object" in result.output


def test_run_bad_coordinator_url(script_file: Path):
    """--coordinator must be a WebSocket URL."""
    result = runner.invoke(app, ["run", "smoke", str(script_file), "-c", "http://localhost:8000"])
    assert result.exit_code == 1
    assert "ws://" in result.output


def test_run_nonexistent_script(tmp_path: Path):
    """loadgrid run with a nonexistent script exits non-zero."""
    result = runner.invoke(app, ["run", "smoke", str(tmp_path / "missing.exs")])
    assert result.exit_code != 0


@pytest.mark.timeout(30)
def test_start_sends_plan_file(sync_coordinator: CoordinatorStub, plan_file: Path):
    """loadgrid start sends the plan file unchanged."""
    sync_coordinator.state["generator_count"] = 1
    result = runner.invoke(app, ["start", str(plan_file), "-c", sync_coordinator.url, "--detach"])
    assert result.exit_code == 0, result.output
    [element] = sync_coordinator.received
    assert element["start_run"]["blocks"] == [{"params": {}, "size": 20}]
    assert element["start_run"]["opts"]["sustain_ms"] == 5000


def test_start_rejects_invalid_plan(tmp_path: Path):
    """A plan file that fails validation exits 1."""
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({"name": "", "addresses": [], "blocks": []}))
    result = runner.invoke(app, ["start", str(path)])
    assert result.exit_code == 1
    assert "Name is invalid" in result.output


# ---------------------------------------------------------------------------
# Tests: loadgrid abort
# ---------------------------------------------------------------------------


@pytest.mark.timeout(30)
def test_abort_waits_for_clear(sync_coordinator: CoordinatorStub):
    """loadgrid abort --wait returns once the run is gone."""
    sync_coordinator.state["run"] = {"id": "r1", "name": "10k", "state": "sustain", "remaining_ms": 60_000}
    result = runner.invoke(app, ["abort", "-c", sync_coordinator.url, "--wait"])
    assert result.exit_code == 0, result.output
    assert "Abort requested for 10k (sustain, 60s remaining)" in result.output
    assert "Run aborted." in result.output
    assert sync_coordinator.received == ["abort_run"]


@pytest.mark.timeout(30)
def test_abort_without_run(sync_coordinator: CoordinatorStub):
    """Nothing is sent when no run is active."""
    result = runner.invoke(app, ["abort", "-c", sync_coordinator.url])
    assert result.exit_code == 0
    assert "No run is active." in result.output
    assert sync_coordinator.received == []


# ---------------------------------------------------------------------------
# Tests: loadgrid reports / remove-report
# ---------------------------------------------------------------------------


@pytest.mark.timeout(30)
def test_reports_lists_reports(sync_coordinator: CoordinatorStub):
    """loadgrid reports prints each report id."""
    sync_coordinator.state["reports"] = [
        {"id": "r1", "name": "first", "maximums": {"cpu_percent": 91}},
        {"id": "r2", "name": "second"},
    ]
    result = runner.invoke(app, ["reports", "-c", sync_coordinator.url])
    assert result.exit_code == 0, result.output
    assert "r1" in result.output
    assert "r2" in result.output


@pytest.mark.timeout(30)
def test_reports_empty(sync_coordinator: CoordinatorStub):
    result = runner.invoke(app, ["reports", "-c", sync_coordinator.url])
    assert result.exit_code == 0
    assert "No reports." in result.output


@pytest.mark.timeout(30)
def test_remove_report(sync_coordinator: CoordinatorStub):
    """loadgrid remove-report waits until the report is gone."""
    sync_coordinator.state["reports"] = [{"id": "r1", "name": "first"}]
    result = runner.invoke(app, ["remove-report", "r1", "-c", sync_coordinator.url])
    assert result.exit_code == 0, result.output
    assert "Removed report r1." in result.output
    assert sync_coordinator.received == [{"remove_report": {"id": "r1"}}]


@pytest.mark.timeout(30)
def test_remove_unknown_report(sync_coordinator: CoordinatorStub):
    result = runner.invoke(app, ["remove-report", "nope", "-c", sync_coordinator.url])
    assert result.exit_code == 1
    assert "No report with id 'nope'" in result.output
    assert sync_coordinator.received == []


# ---------------------------------------------------------------------------
# Tests: loadgrid watch
# ---------------------------------------------------------------------------


@pytest.mark.timeout(30)
def test_watch_once(sync_coordinator: CoordinatorStub):
    """loadgrid watch --once prints the dashboard and exits."""
    sync_coordinator.state.update(generator_count=3, stats={"cpu_percent": [55.5]})
    result = runner.invoke(app, ["watch", "-c", sync_coordinator.url, "--once"])
    assert result.exit_code == 0, result.output
    assert "Generators:" in result.output
    assert "Telemetry" in result.output
    assert "55 %" in result.output


@pytest.mark.timeout(30)
def test_legacy_coordinator_never_syncs(sync_coordinator: CoordinatorStub, monkeypatch: pytest.MonkeyPatch):
    """A legacy client waiting on a unified coordinator gives up with an error."""
    monkeypatch.setattr("loadgrid.cli.session.SYNC_TIMEOUT", 0.3)
    result = runner.invoke(app, ["watch", "-c", sync_coordinator.url, "--once", "--legacy"])
    assert result.exit_code == 1
    assert "Timed out" in result.output
