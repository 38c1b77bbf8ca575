"""Ramp sizing — round a desired fleet load to whole ramp steps."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_RAMP_MULTIPLIER = 10


@dataclass(frozen=True)
class RampSizing:
    """Effective run size derived from the current fleet.

    Attributes:
        step_size: Devices added per ramp step (generators x multiplier).
        steps: Whole ramp steps that fit in the desired size.
        effective_size: ``steps * step_size``, the size actually run.
    """

    step_size: int
    steps: int
    effective_size: int


def compute_ramp(
    generator_count: int,
    desired_size: int,
    *,
    multiplier: int = DEFAULT_RAMP_MULTIPLIER,
) -> RampSizing:
    """Quantize *desired_size* to a multiple of the fleet's ramp step.

    Each generator adds *multiplier* devices per ramp step, so the effective
    size is the largest multiple of ``generator_count * multiplier`` not
    above *desired_size*. With no generators known yet the step is 0 and
    both the step count and the effective size are 0, which plan
    validation then rejects.

    Args:
        generator_count: Generators currently connected.
        desired_size: Number of devices the user asked for.
        multiplier: Devices per generator per ramp step.

    Returns:
        The resulting sizing.

    Example::

        compute_ramp(100, 10_000)  # RampSizing(step_size=1000, steps=10, effective_size=10000)
        compute_ramp(0, 10_000)    # RampSizing(step_size=0, steps=0, effective_size=0)
    """
    step_size = max(generator_count, 0) * multiplier
    if step_size <= 0:
        return RampSizing(step_size=0, steps=0, effective_size=0)

    steps = max(desired_size, 0) // step_size
    return RampSizing(step_size=step_size, steps=steps, effective_size=steps * step_size)
