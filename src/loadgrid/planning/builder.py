"""Build a validated :class:`RunPlan` from simple plan inputs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from loadgrid._internal.errors import ValidationError
from loadgrid.planning.ramp import DEFAULT_RAMP_MULTIPLIER, compute_ramp
from loadgrid.protocol.commands import Address, Block, RunOpts, RunPlan

DEFAULT_SCRIPT = """\
0..100 |> Enum.each(fn _ ->
  get("/")
  delay(900, 0.1)
end)"""

#: Target protocols the generators understand.
TARGET_PROTOCOLS = ("http10", "http10s", "http", "https", "http2", "http2s", "tcp", "udp")


@dataclass(frozen=True)
class PlanInputs:
    """The handful of values a user fills in to start a run.

    Attributes:
        name: Plan name.
        script: Script source run by every device.
        params: Parameters passed to the script.
        hosts: Comma-separated target hosts.
        port: Target port.
        protocol: Target protocol, one of :data:`TARGET_PROTOCOLS`.
        desired_size: Devices asked for, rounded down to whole ramp steps.
        rampup_seconds: Total ramp-up time.
        sustain_seconds: Time to hold full load.
        rampdown_seconds: Total ramp-down time.
    """

    name: str = "10k"
    script: str = DEFAULT_SCRIPT
    params: dict[str, Any] = field(default_factory=dict)
    hosts: str = "localhost"
    port: int = 5000
    protocol: str = "http"
    desired_size: int = 10_000
    rampup_seconds: int = 900
    sustain_seconds: int = 900
    rampdown_seconds: int = 900


def parse_params(text: str) -> dict[str, Any]:
    """Parse script parameters given as a JSON object.

    Raises:
        ValidationError: If *text* is not a JSON object.
    """
    try:
        params = json.loads(text)
    except ValueError as exc:
        msg = f"Params are not valid JSON: {exc}"
        raise ValidationError(msg) from exc
    if not isinstance(params, dict):
        msg = "Params must be a JSON object"
        raise ValidationError(msg)
    return params


def build_run_plan(
    inputs: PlanInputs,
    generator_count: int,
    *,
    multiplier: int = DEFAULT_RAMP_MULTIPLIER,
) -> RunPlan:
    """Turn *inputs* into a run plan sized for the current fleet.

    The desired size is rounded down to whole ramp steps of
    ``generator_count * multiplier`` devices, and the ramp-up and ramp-down
    times are spread evenly over those steps.

    Args:
        inputs: User-supplied plan values.
        generator_count: Generators currently connected.
        multiplier: Devices per generator per ramp step.

    Returns:
        A validated plan.

    Raises:
        ValidationError: If the inputs do not make a runnable plan (for
            example, when no generators are connected the effective size
            is 0).
    """
    if inputs.protocol not in TARGET_PROTOCOLS:
        msg = f"Protocol is invalid: {inputs.protocol!r}. Choose from: {', '.join(TARGET_PROTOCOLS)}"
        raise ValidationError(msg)

    sizing = compute_ramp(generator_count, inputs.desired_size, multiplier=multiplier)
    steps = sizing.steps

    plan = RunPlan(
        name=inputs.name,
        addresses=tuple(
            Address(host=host.strip(), port=inputs.port, protocol=inputs.protocol)
            for host in inputs.hosts.split(",")
            if host.strip()
        ),
        blocks=(Block(params=dict(inputs.params), size=sizing.effective_size),),
        opts=RunOpts(
            ramp_steps=steps,
            rampup_step_ms=(inputs.rampup_seconds * 1000) / steps if steps else None,
            sustain_ms=inputs.sustain_seconds * 1000,
            rampdown_step_ms=(inputs.rampdown_seconds * 1000) / steps if steps else None,
        ),
        script=inputs.script,
    )
    plan.validate()
    return plan
