"""Coordinator-owned state types and their wire validation.

Every type here is a frozen dataclass built from decoded JSON through a
``from_dict`` classmethod. ``from_dict`` raises
:class:`~loadgrid._internal.errors.DecodeError` when the payload does not
have the expected shape, so malformed envelopes are rejected at decode time
instead of being duck-typed further down the pipeline.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any

from loadgrid._internal.errors import DecodeError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from loadgrid._internal.types import Samples, Stats


class _Unset(Enum):
    """Marker type for a field that is absent from a partial update."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


#: Field absent from a delta: "unchanged since the last apply".
#: Distinct from ``None``, which means "explicitly cleared".
UNSET = _Unset.UNSET


# ---------------------------------------------------------------------------
# Field validation helpers
# ---------------------------------------------------------------------------


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def require_mapping(value: object, where: str) -> Mapping[str, Any]:
    """Return *value* if it is a JSON object, else raise DecodeError."""
    if not isinstance(value, dict):
        msg = f"{where} must be an object, got {type(value).__name__}"
        raise DecodeError(msg)
    return value


def _require_str(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        msg = f"{where}.{key} must be a string, got {value!r}"
        raise DecodeError(msg)
    return value


def _optional_str(data: Mapping[str, Any], key: str, where: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        msg = f"{where}.{key} must be a string, got {value!r}"
        raise DecodeError(msg)
    return value


def _require_int(data: Mapping[str, Any], key: str, where: str) -> int:
    value = data.get(key)
    if not _is_number(value) or not math.isfinite(value):
        msg = f"{where}.{key} must be a number, got {value!r}"
        raise DecodeError(msg)
    return int(value)


def parse_samples(value: object, where: str) -> Samples:
    """Validate one telemetry series (numbers or nulls, newest first)."""
    if not isinstance(value, list):
        msg = f"{where} must be a list of samples, got {type(value).__name__}"
        raise DecodeError(msg)
    samples: Samples = []
    for sample in value:
        if sample is not None and not _is_number(sample):
            msg = f"{where} contains a non-numeric sample: {sample!r}"
            raise DecodeError(msg)
        samples.append(sample)
    return samples


def parse_stats(value: object, where: str) -> Stats:
    """Validate a mapping of metric key to telemetry series."""
    data = require_mapping(value, where)
    return {str(key): parse_samples(series, f"{where}.{key}") for key, series in data.items()}


def _parse_maximums(value: object, where: str) -> dict[str, float | None]:
    if value is None:
        return {}
    data = require_mapping(value, where)
    maximums: dict[str, float | None] = {}
    for key, maximum in data.items():
        if maximum is not None and not _is_number(maximum):
            msg = f"{where}.{key} must be a number, got {maximum!r}"
            raise DecodeError(msg)
        maximums[str(key)] = maximum
    return maximums


# ---------------------------------------------------------------------------
# State types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScriptError:
    """A compile- or run-time failure in the load-generation script.

    Attributes:
        description: Error text reported by the coordinator.
        line: Script line the error refers to.
    """

    description: str
    line: int

    @classmethod
    def from_dict(cls, value: object, where: str = "script_error") -> ScriptError:
        data = require_mapping(value, where)
        return cls(
            description=_require_str(data, "description", where),
            line=_require_int(data, "line", where),
        )


@dataclass(frozen=True)
class Run:
    """The run currently executing on the coordinator.

    ``state`` is an opaque label (ramp-up, sustain, ...) owned by the
    coordinator; the client never infers transitions locally.

    Attributes:
        id: Run identifier, stable for the lifetime of the run.
        name: Plan name the run was started from.
        state: Coordinator-supplied phase label.
        remaining_ms: Milliseconds left in the current phase, as received.
    """

    id: str
    name: str
    state: str
    remaining_ms: int = 0

    @classmethod
    def from_dict(cls, value: object, where: str = "run") -> Run:
        data = require_mapping(value, where)
        remaining = data.get("remaining_ms")
        return cls(
            id=_require_str(data, "id", where),
            name=_require_str(data, "name", where),
            state=_require_str(data, "state", where),
            remaining_ms=0 if remaining is None else _require_int(data, "remaining_ms", where),
        )


@dataclass(frozen=True)
class ReportResult:
    """Links to exported results of a finished run."""

    csv_url: str | None = None
    cw_url: str | None = None

    @classmethod
    def from_dict(cls, value: object, where: str = "result") -> ReportResult:
        if value is None:
            return cls()
        data = require_mapping(value, where)
        return cls(
            csv_url=_optional_str(data, "csv_url", where),
            cw_url=_optional_str(data, "cw_url", where),
        )


@dataclass(frozen=True)
class Report:
    """Persisted summary of a completed run.

    Attributes:
        id: Unique report identifier (the id of the run it summarises).
        name: Plan name.
        maximums: Peak value observed per metric key during the run.
        result: Export links.
        script_error: Script error recorded during the run, if any.
    """

    id: str
    name: str
    maximums: dict[str, float | None] = field(default_factory=dict)
    result: ReportResult = field(default_factory=ReportResult)
    script_error: ScriptError | None = None

    @classmethod
    def from_dict(cls, value: object, where: str = "report") -> Report:
        data = require_mapping(value, where)
        script_error = data.get("script_error")
        return cls(
            id=_require_str(data, "id", where),
            name=_require_str(data, "name", where),
            maximums=_parse_maximums(data.get("maximums"), f"{where}.maximums"),
            result=ReportResult.from_dict(data.get("result"), f"{where}.result"),
            script_error=(
                None
                if script_error is None
                else ScriptError.from_dict(script_error, f"{where}.script_error")
            ),
        )


@dataclass(frozen=True)
class StateDelta:
    """Partial coordinator state carried by one notification.

    A field left at :data:`UNSET` was absent from the notification and
    leaves the mirrored value unchanged. ``None`` explicitly clears it.

    ``reports`` replaces the whole report set (snapshot-replace), while
    ``report_added`` and ``report_removed`` edit it by id (delta-apply).

    Attributes:
        generator_count: Number of connected generators.
        stats: Telemetry series keyed by metric key.
        run: Active run, or None when idle.
        reports: Full report list.
        last_script_error: Most recent script error, or None.
        report_added: One report to record.
        report_removed: Id of one report to forget.
    """

    generator_count: int | _Unset = UNSET
    stats: Stats | None | _Unset = UNSET
    run: Run | None | _Unset = UNSET
    reports: tuple[Report, ...] | _Unset = UNSET
    last_script_error: ScriptError | None | _Unset = UNSET
    report_added: Report | _Unset = UNSET
    report_removed: str | _Unset = UNSET

    @classmethod
    def from_dict(cls, value: object, where: str = "notify") -> StateDelta:
        """Build a delta from a unified ``notify`` payload.

        Keys the payload does not carry stay :data:`UNSET`; unknown keys
        are ignored so newer coordinators can add fields.
        """
        data = require_mapping(value, where)
        kwargs: dict[str, Any] = {}

        if "generator_count" in data:
            count = _require_int(data, "generator_count", where)
            if count < 0:
                msg = f"{where}.generator_count must be non-negative, got {count}"
                raise DecodeError(msg)
            kwargs["generator_count"] = count

        if "stats" in data:
            stats = data["stats"]
            kwargs["stats"] = None if stats is None else parse_stats(stats, f"{where}.stats")

        if "run" in data:
            run = data["run"]
            kwargs["run"] = None if run is None else Run.from_dict(run, f"{where}.run")

        if "reports" in data:
            reports = data["reports"]
            if not isinstance(reports, list):
                msg = f"{where}.reports must be a list, got {type(reports).__name__}"
                raise DecodeError(msg)
            kwargs["reports"] = tuple(
                Report.from_dict(report, f"{where}.reports[{i}]")
                for i, report in enumerate(reports)
            )

        if "last_script_error" in data:
            error = data["last_script_error"]
            kwargs["last_script_error"] = (
                None
                if error is None
                else ScriptError.from_dict(error, f"{where}.last_script_error")
            )

        return cls(**kwargs)

    def present_fields(self) -> list[str]:
        """Return the names of the fields this delta carries."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not UNSET]

    def is_empty(self) -> bool:
        """Return True if the delta carries no field at all."""
        return not self.present_fields()
