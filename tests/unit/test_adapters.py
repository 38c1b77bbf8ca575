"""Tests for protocol adapters."""

from __future__ import annotations

import json

import pytest

from loadgrid._internal.errors import ConfigError
from loadgrid.protocol.adapters import LegacyAdapter, UnifiedAdapter, create_adapter
from loadgrid.protocol.commands import AbortRun, Address, Block, RunPlan, StartRun
from loadgrid.protocol.models import UNSET, Run, ScriptError

_GRID = {
    "telemetry": {
        "cpu": [42.0],
        "network_rx": [1024],
        "network_tx": [2048],
        "active_count": [100],
        "generator_count": [3, 2],
        "last_script_error": {"description": "bad", "line": 2},
    },
    "run": {"id": "r1", "name": "10k", "state": "sustain", "remaining_ms": 3000},
}


class TestCreateAdapter:
    def test_by_name(self):
        assert isinstance(create_adapter("unified"), UnifiedAdapter)
        assert isinstance(create_adapter("legacy"), LegacyAdapter)

    def test_unknown_name_raises(self):
        with pytest.raises(ConfigError, match="Unknown protocol"):
            create_adapter("v3")


class TestUnifiedAdapter:
    def test_notify_passes_through(self):
        [delta] = UnifiedAdapter().decode('[{"notify": {"generator_count": 5, "run": null}}]')
        assert delta.generator_count == 5
        assert delta.run is None
        assert delta.stats is UNSET

    def test_encodes_start_run_tag(self):
        plan = RunPlan(name="p", addresses=(Address(host="h"),), blocks=(Block(size=1),))
        frame = json.loads(UnifiedAdapter().encode([StartRun(plan), AbortRun()]))
        assert "start_run" in frame[0]
        assert frame[1] == "abort_run"


class TestLegacyAdapter:
    def test_init_becomes_full_delta(self):
        frame = json.dumps([{"init": {"grid": _GRID, "reports": [{"id": "a", "name": "A"}]}}])
        [delta] = LegacyAdapter().decode(frame)
        assert delta.generator_count == 3
        assert delta.stats["cpu_percent"] == [42.0]
        assert delta.run == Run(id="r1", name="10k", state="sustain", remaining_ms=3000)
        assert delta.last_script_error == ScriptError(description="bad", line=2)
        assert [report.id for report in delta.reports] == ["a"]
        assert delta.report_added is UNSET

    def test_grid_changed_clears_absent_script_error(self):
        grid = {"telemetry": {"generator_count": [1]}, "run": None}
        [delta] = LegacyAdapter().decode(json.dumps([{"notify": {"grid_changed": grid}}]))
        assert delta.last_script_error is None
        assert delta.run is None
        assert delta.reports is UNSET

    def test_report_deltas(self):
        frame = json.dumps(
            [{"notify": {"report_added": {"id": "b", "name": "B", "max_cpu": 90}, "report_removed": {"id": "a"}}}]
        )
        added, removed = LegacyAdapter().decode(frame)
        assert added.report_added.id == "b"
        assert added.report_added.maximums == {"cpu_percent": 90}
        assert removed.report_removed == "a"
        assert added.generator_count is UNSET

    def test_encodes_run_plan_tag(self):
        plan = RunPlan(name="p", addresses=(Address(host="h"),), blocks=(Block(size=1),))
        frame = json.loads(LegacyAdapter().encode([StartRun(plan)]))
        assert list(frame[0]) == ["run_plan"]

    def test_ignores_unified_notify_shape(self):
        assert LegacyAdapter().decode('[{"notify": {"generator_count": 5}}]') == []

    @pytest.mark.parametrize("count", ["NaN", "Infinity", "-2"])
    def test_bad_generator_count_drops_only_its_element(self, count: str):
        frame = (
            '[{"notify": {"report_added": {"id": "b", "name": "B"}}},'
            f' {{"notify": {{"grid_changed": {{"telemetry": {{"generator_count": [{count}]}}, "run": null}}}}}},'
            ' {"notify": {"report_removed": {"id": "a"}}}]'
        )
        added, removed = LegacyAdapter().decode(frame)
        assert added.report_added.id == "b"
        assert removed.report_removed == "a"
