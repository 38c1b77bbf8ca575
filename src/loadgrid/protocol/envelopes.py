"""Typed inbound envelopes and the parsers that build them.

Two coordinator generations exist. The unified protocol sends
``{"notify": State}`` only. The legacy protocol sends one
``{"init": {"reports": [...], "grid": Grid}}`` per connection followed by
``{"notify": {"grid_changed"?, "report_added"?, "report_removed"?}}``
deltas, with telemetry and report maxima under older field names.

Each parser takes the payload of one tag and returns the envelopes it
carries, or raises :class:`~loadgrid._internal.errors.DecodeError`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadgrid._internal.errors import DecodeError
from loadgrid._internal.logging import get_logger
from loadgrid.protocol.models import (
    Report,
    Run,
    ScriptError,
    StateDelta,
    parse_samples,
    require_mapping,
)

if TYPE_CHECKING:
    from loadgrid._internal.types import Samples

logger = get_logger("protocol.envelopes")

#: Legacy telemetry series name -> unified metric key.
LEGACY_SERIES_KEYS: dict[str, str] = {
    "cpu": "cpu_percent",
    "network_rx": "network_rx_bytes_per_second",
    "network_tx": "network_tx_bytes_per_second",
    "active_count": "active_device_number",
}

#: Legacy report maximum field -> unified metric key.
LEGACY_MAXIMUM_KEYS: dict[str, str] = {
    "max_cpu": "cpu_percent",
    "max_network_rx": "network_rx_bytes_per_second",
    "max_network_tx": "network_tx_bytes_per_second",
    "max_generator_count": "generator_count",
}


@dataclass(frozen=True)
class Notify:
    """Unified protocol: a partial state to merge into the mirror."""

    state: StateDelta


@dataclass(frozen=True)
class Telemetry:
    """Legacy fleet telemetry, already renamed to unified metric keys.

    Attributes:
        stats: Series keyed by unified metric key.
        generator_counts: Generator count series, newest first.
        last_script_error: Script error the fleet last reported.
    """

    stats: dict[str, Samples] = field(default_factory=dict)
    generator_counts: Samples = field(default_factory=list)
    last_script_error: ScriptError | None = None

    @property
    def generator_count(self) -> int:
        """Latest generator count, 0 when the series has no sample."""
        latest = self.generator_counts[0] if self.generator_counts else None
        return int(latest) if latest is not None else 0


@dataclass(frozen=True)
class Grid:
    """Legacy grid snapshot: fleet telemetry plus the active run."""

    telemetry: Telemetry
    run: Run | None = None


@dataclass(frozen=True)
class Init:
    """Legacy protocol: full snapshot sent once per connection."""

    grid: Grid
    reports: tuple[Report, ...] = ()


@dataclass(frozen=True)
class GridChanged:
    """Legacy protocol: replacement grid snapshot."""

    grid: Grid


@dataclass(frozen=True)
class ReportAdded:
    """Legacy protocol: one report was recorded."""

    report: Report


@dataclass(frozen=True)
class ReportRemoved:
    """Legacy protocol: one report was deleted."""

    report_id: str


Envelope = Notify | Init | GridChanged | ReportAdded | ReportRemoved


# ---------------------------------------------------------------------------
# Unified protocol
# ---------------------------------------------------------------------------


def parse_notify(payload: object) -> list[Envelope]:
    """Parse a unified ``notify`` payload."""
    return [Notify(state=StateDelta.from_dict(payload, "notify"))]


# ---------------------------------------------------------------------------
# Legacy protocol
# ---------------------------------------------------------------------------


def parse_telemetry(value: object, where: str = "telemetry") -> Telemetry:
    """Parse legacy telemetry and rename its series to unified keys.

    ``last_errors`` maps an error type to its count series; each becomes a
    ``<type>_error_count`` series.
    """
    data = require_mapping(value, where)
    stats: dict[str, Samples] = {}
    for legacy_key, key in LEGACY_SERIES_KEYS.items():
        if legacy_key in data:
            stats[key] = parse_samples(data[legacy_key], f"{where}.{legacy_key}")

    last_errors = data.get("last_errors")
    if last_errors is not None:
        errors = require_mapping(last_errors, f"{where}.last_errors")
        for error_type, series in errors.items():
            stats[f"{error_type}_error_count"] = parse_samples(
                series, f"{where}.last_errors.{error_type}"
            )

    raw_counts = data.get("generator_count")
    generator_counts = (
        [] if raw_counts is None else parse_samples(raw_counts, f"{where}.generator_count")
    )
    latest = generator_counts[0] if generator_counts else None
    if latest is not None and (not math.isfinite(latest) or latest < 0):
        msg = f"{where}.generator_count must be a finite non-negative number, got {latest!r}"
        raise DecodeError(msg)

    script_error = data.get("last_script_error")
    return Telemetry(
        stats=stats,
        generator_counts=generator_counts,
        last_script_error=(
            None
            if script_error is None
            else ScriptError.from_dict(script_error, f"{where}.last_script_error")
        ),
    )


def parse_grid(value: object, where: str = "grid") -> Grid:
    data = require_mapping(value, where)
    if "telemetry" not in data:
        msg = f"{where}.telemetry is missing"
        raise DecodeError(msg)
    run = data.get("run")
    return Grid(
        telemetry=parse_telemetry(data["telemetry"], f"{where}.telemetry"),
        run=None if run is None else Run.from_dict(run, f"{where}.run"),
    )


def parse_legacy_report(value: object, where: str = "report") -> Report:
    """Parse a legacy report, folding ``max_*`` fields into ``maximums``."""
    data = require_mapping(value, where)
    base = Report.from_dict(
        {key: data[key] for key in ("id", "name", "result", "script_error") if key in data},
        where,
    )
    maximums: dict[str, float | None] = {}
    for legacy_key, key in LEGACY_MAXIMUM_KEYS.items():
        maximum = data.get(legacy_key)
        if maximum is None:
            continue
        if isinstance(maximum, bool) or not isinstance(maximum, (int, float)):
            msg = f"{where}.{legacy_key} must be a number, got {maximum!r}"
            raise DecodeError(msg)
        maximums[key] = maximum
    return Report(
        id=base.id,
        name=base.name,
        maximums=maximums,
        result=base.result,
        script_error=base.script_error,
    )


def parse_init(payload: object) -> list[Envelope]:
    """Parse a legacy ``init`` payload."""
    data = require_mapping(payload, "init")
    if "grid" not in data:
        msg = "init.grid is missing"
        raise DecodeError(msg)
    reports = data.get("reports") or []
    if not isinstance(reports, list):
        msg = f"init.reports must be a list, got {type(reports).__name__}"
        raise DecodeError(msg)
    return [
        Init(
            grid=parse_grid(data["grid"], "init.grid"),
            reports=tuple(
                parse_legacy_report(report, f"init.reports[{i}]")
                for i, report in enumerate(reports)
            ),
        )
    ]


def parse_legacy_notify(payload: object) -> list[Envelope]:
    """Parse a legacy ``notify`` payload into one envelope per delta.

    Deltas come out as grid change, then report added, then report
    removed, whatever their key order in the payload.
    """
    data = require_mapping(payload, "notify")
    envelopes: list[Envelope] = []
    if data.get("grid_changed") is not None:
        envelopes.append(GridChanged(grid=parse_grid(data["grid_changed"], "notify.grid_changed")))
    if data.get("report_added") is not None:
        envelopes.append(
            ReportAdded(report=parse_legacy_report(data["report_added"], "notify.report_added"))
        )
    if data.get("report_removed") is not None:
        removed = require_mapping(data["report_removed"], "notify.report_removed")
        report_id = removed.get("id")
        if not isinstance(report_id, str):
            msg = f"notify.report_removed.id must be a string, got {report_id!r}"
            raise DecodeError(msg)
        envelopes.append(ReportRemoved(report_id=report_id))
    if not envelopes:
        logger.debug("Legacy notify carried no known delta: keys=%s", sorted(data))
    return envelopes
