"""Outbound commands and the run plan they carry."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from loadgrid._internal.errors import ValidationError

__all__ = [
    "AbortRun",
    "Address",
    "Block",
    "Command",
    "RemoveReport",
    "RunOpts",
    "RunPlan",
    "StartRun",
]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _is_positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


def _optional_number(value: object, name: str) -> Any:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{name} must be a number, got {value!r}"
        raise ValidationError(msg)
    return value


@dataclass(frozen=True)
class Address:
    """Target endpoint the generators put load on.

    Attributes:
        host: Target host name or address.
        port: Target port. Coordinator default when omitted.
        protocol: One of http10, http10s, http, https, http2, http2s, tcp,
            udp. Coordinator default when omitted.
    """

    host: str
    port: int | None = None
    protocol: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"host": self.host, "port": self.port, "protocol": self.protocol})


@dataclass(frozen=True)
class Block:
    """A group of simulated devices running the same script.

    Attributes:
        script: Per-block script source, overrides the plan script.
        params: Parameters passed to the script.
        size: Number of devices in the block.
    """

    script: str | None = None
    params: dict[str, Any] | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"script": self.script, "params": self.params, "size": self.size})


@dataclass(frozen=True)
class RunOpts:
    """Ramp and sustain timing of a run.

    Attributes:
        ramp_steps: Number of steps used to ramp up and down.
        rampup_step_ms: Milliseconds per ramp-up step.
        sustain_ms: Milliseconds to hold full load.
        rampdown_step_ms: Milliseconds per ramp-down step.
    """

    ramp_steps: int | None = None
    rampup_step_ms: float | None = None
    sustain_ms: float | None = None
    rampdown_step_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "ramp_steps": self.ramp_steps,
                "rampup_step_ms": self.rampup_step_ms,
                "sustain_ms": self.sustain_ms,
                "rampdown_step_ms": self.rampdown_step_ms,
            }
        )


@dataclass(frozen=True)
class RunPlan:
    """Everything the coordinator needs to start a run.

    Attributes:
        name: Plan name, shown on the run and on its report.
        addresses: Target endpoints.
        blocks: Device blocks.
        opts: Ramp and sustain timing.
        script: Script source shared by all blocks.
    """

    name: str
    addresses: tuple[Address, ...]
    blocks: tuple[Block, ...]
    opts: RunOpts = field(default_factory=RunOpts)
    script: str | None = None

    def validate(self) -> None:
        """Check the plan before it is sent.

        Raises:
            ValidationError: If the name is empty, there are no addresses or
                blocks, or a port, size, ramp step count, ramp step duration
                or sustain duration is not positive.
        """
        if not self.name.strip():
            msg = "Name is invalid"
            raise ValidationError(msg)

        if not self.addresses:
            msg = "At least one target address is required"
            raise ValidationError(msg)
        for address in self.addresses:
            if not address.host.strip():
                msg = "Target host is invalid"
                raise ValidationError(msg)
            if address.port is not None and address.port <= 0:
                msg = f"Port is invalid: {address.port}"
                raise ValidationError(msg)

        if not self.blocks:
            msg = "At least one block is required"
            raise ValidationError(msg)
        for block in self.blocks:
            if block.size is not None and block.size <= 0:
                msg = f"Effective size is invalid: {block.size}"
                raise ValidationError(msg)

        opts = self.opts
        if opts.ramp_steps is not None and opts.ramp_steps <= 0:
            msg = f"Ramp steps is invalid: {opts.ramp_steps}"
            raise ValidationError(msg)
        if opts.rampup_step_ms is not None and not _is_positive(opts.rampup_step_ms):
            msg = f"Rampup duration is invalid: {opts.rampup_step_ms}"
            raise ValidationError(msg)
        if opts.rampdown_step_ms is not None and not _is_positive(opts.rampdown_step_ms):
            msg = f"Rampdown duration is invalid: {opts.rampdown_step_ms}"
            raise ValidationError(msg)
        if opts.sustain_ms is not None and not _is_positive(opts.sustain_ms):
            msg = f"Sustain duration is invalid: {opts.sustain_ms}"
            raise ValidationError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Render the plan in its wire shape."""
        return _drop_none(
            {
                "name": self.name,
                "addresses": [address.to_dict() for address in self.addresses],
                "blocks": [block.to_dict() for block in self.blocks],
                "opts": self.opts.to_dict(),
                "script": self.script,
            }
        )

    @classmethod
    def from_dict(cls, data: object) -> RunPlan:
        """Build a plan from its JSON shape (the dashboard's advanced mode).

        Raises:
            ValidationError: If the document does not have the plan shape.
        """
        if not isinstance(data, dict):
            msg = "Run plan must be a JSON object"
            raise ValidationError(msg)
        try:
            opts = data.get("opts") or {}
            return cls(
                name=str(data["name"]),
                addresses=tuple(
                    Address(
                        host=str(item["host"]),
                        port=_optional_number(item.get("port"), "port"),
                        protocol=item.get("protocol"),
                    )
                    for item in data.get("addresses", [])
                ),
                blocks=tuple(
                    Block(
                        script=item.get("script"),
                        params=item.get("params"),
                        size=_optional_number(item.get("size"), "size"),
                    )
                    for item in data.get("blocks", [])
                ),
                opts=RunOpts(
                    ramp_steps=_optional_number(opts.get("ramp_steps"), "ramp_steps"),
                    rampup_step_ms=_optional_number(opts.get("rampup_step_ms"), "rampup_step_ms"),
                    sustain_ms=_optional_number(opts.get("sustain_ms"), "sustain_ms"),
                    rampdown_step_ms=_optional_number(
                        opts.get("rampdown_step_ms"), "rampdown_step_ms"
                    ),
                ),
                script=data.get("script"),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            msg = f"Run plan is malformed: {exc}"
            raise ValidationError(msg) from exc


@dataclass(frozen=True)
class StartRun:
    """Ask the coordinator to start a run from *plan*."""

    plan: RunPlan


@dataclass(frozen=True)
class AbortRun:
    """Ask the coordinator to abort the active run."""


@dataclass(frozen=True)
class RemoveReport:
    """Ask the coordinator to delete the report with *report_id*."""

    report_id: str


Command = StartRun | AbortRun | RemoveReport
