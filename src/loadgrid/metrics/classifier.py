"""Metric classification and display formatting.

A metric key is classified by an ordered suffix table, first match wins.
Order matters because some suffixes end others (``_bytes_per_second`` vs
``_per_second``, ``_bytes_count`` vs ``_count``):

==========================  ==========  ===================================
Suffix                      Kind        Display
==========================  ==========  ===================================
``_bytes_per_second``       throughput  byte rate (``1.5 KB/s``)
``_per_second``             rate        integer per second (``12/s``)
``_percent``                load        truncated percent (``83 %``)
``_us``                     duration    seconds / milliseconds / microseconds
``_bytes_count``            volume      bytes (``2.0 MB``)
``_count``                  count       integer
``_number``                 number      integer
anything else               other       plain number
==========================  ==========  ===================================

Rate and count keys whose stem ends in the error infix (``_error`` by
default) have the infix stripped from their display name and raise an alert
on any non-zero sample. ``cpu_percent`` raises an alert above the policy's
CPU threshold. All functions here are pure.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = [
    "DEFAULT_POLICY",
    "AlertPolicy",
    "MetricClass",
    "MetricKind",
    "classify",
    "format_bytes",
    "format_metric",
    "format_value",
    "is_alert",
    "latest_sample",
    "sparkline",
]

MISSING = "-"


class MetricKind(Enum):
    """What a metric measures, which decides how it is formatted."""

    THROUGHPUT = auto()
    RATE = auto()
    LOAD = auto()
    DURATION = auto()
    VOLUME = auto()
    COUNT = auto()
    NUMBER = auto()
    OTHER = auto()


@dataclass(frozen=True)
class AlertPolicy:
    """Thresholds that turn a sample into an alert.

    Attributes:
        cpu_key: Metric key the CPU threshold applies to.
        cpu_threshold: CPU percentage above which ``cpu_key`` alerts.
        error_infix: Stem ending that marks a rate or count as an error
            series.
        error_threshold: Error series alert when a sample exceeds this.
    """

    cpu_key: str = "cpu_percent"
    cpu_threshold: float = 80.0
    error_infix: str = "_error"
    error_threshold: float = 0.0


DEFAULT_POLICY = AlertPolicy()


@dataclass(frozen=True)
class MetricClass:
    """Classification of one metric key.

    Attributes:
        key: The raw metric key.
        kind: Matched rule.
        display_name: Human-readable name.
        unit: Unit label, None for unitless kinds.
        alert_threshold: Samples above this value alert; None when the
            metric never alerts.
    """

    key: str
    kind: MetricKind
    display_name: str
    unit: str | None = None
    alert_threshold: float | None = None

    @property
    def flagged(self) -> bool:
        """True if this metric carries a severity rule."""
        return self.alert_threshold is not None


# (suffix, kind, unit, error infix applies)
_RULES: tuple[tuple[str, MetricKind, str | None, bool], ...] = (
    ("_bytes_per_second", MetricKind.THROUGHPUT, "bytes/second", False),
    ("_per_second", MetricKind.RATE, "per second", True),
    ("_percent", MetricKind.LOAD, "%", False),
    ("_us", MetricKind.DURATION, "microseconds", False),
    ("_bytes_count", MetricKind.VOLUME, "bytes", False),
    ("_count", MetricKind.COUNT, None, True),
    ("_number", MetricKind.NUMBER, None, False),
)

_BYTE_UNITS = ("KB", "MB", "GB", "TB", "PB")


def _title(stem: str) -> str:
    return " ".join(word.capitalize() for word in stem.split("_") if word)


def classify(key: str, policy: AlertPolicy = DEFAULT_POLICY) -> MetricClass:
    """Classify *key* against the suffix table.

    Args:
        key: Metric key, e.g. ``network_rx_bytes_per_second``.
        policy: Alert thresholds.

    Returns:
        The first matching classification.
    """
    for suffix, kind, unit, has_error_infix in _RULES:
        if not key.endswith(suffix) or len(key) == len(suffix):
            continue
        stem = key[: -len(suffix)]
        threshold: float | None = None
        if has_error_infix and policy.error_infix and stem.endswith(policy.error_infix):
            stem = stem[: -len(policy.error_infix)] or stem
            threshold = policy.error_threshold
        elif key == policy.cpu_key:
            threshold = policy.cpu_threshold
        return MetricClass(
            key=key,
            kind=kind,
            display_name=_title(stem),
            unit=unit,
            alert_threshold=threshold,
        )
    return MetricClass(key=key, kind=MetricKind.OTHER, display_name=_title(key))


def latest_sample(samples: Sequence[object] | None) -> float | None:
    """Return the newest sample if it is a finite number, else None."""
    if not samples:
        return None
    value = samples[0]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def format_bytes(value: float) -> str:
    """Format a byte quantity with a binary unit prefix.

    >>> format_bytes(512)
    '512 B'
    >>> format_bytes(1536)
    '1.5 KB'
    """
    if abs(value) < 1024:
        return f"{int(value)} B"
    scaled = float(value)
    unit = "B"
    for unit in _BYTE_UNITS:
        scaled /= 1024
        if abs(scaled) < 1024:
            break
    return f"{scaled:.1f} {unit}"


def _format_duration(value: float) -> str:
    if value >= 1_000_000:
        return f"{int(value // 1_000_000)} seconds"
    if value >= 1_000:
        return f"{int(value // 1_000)} milliseconds"
    return f"{int(value)} microseconds"


def format_value(key: str, value: object, policy: AlertPolicy = DEFAULT_POLICY) -> str:
    """Format a single sample of *key* for display.

    Args:
        key: Metric key.
        value: The sample; None or non-numeric values render as ``"-"``.
        policy: Alert thresholds (only used for classification).

    Returns:
        The unit-scaled display string.
    """
    number = latest_sample([value])
    if number is None:
        return MISSING

    kind = classify(key, policy).kind
    if kind is MetricKind.THROUGHPUT:
        return f"{format_bytes(number)}/s"
    if kind is MetricKind.RATE:
        return f"{int(number)}/s"
    if kind is MetricKind.LOAD:
        return f"{int(number)} %"
    if kind is MetricKind.DURATION:
        return _format_duration(number)
    if kind is MetricKind.VOLUME:
        return format_bytes(number)
    if kind in (MetricKind.COUNT, MetricKind.NUMBER):
        return str(int(number))
    if float(number).is_integer():
        return str(int(number))
    return f"{number:.2f}"


def format_metric(
    key: str,
    samples: Sequence[object] | None,
    policy: AlertPolicy = DEFAULT_POLICY,
) -> str:
    """Format the newest sample of a series.

    Args:
        key: Metric key.
        samples: Series, newest sample first.
        policy: Alert thresholds.

    Returns:
        ``"-"`` when the newest sample is missing or not a number,
        otherwise the formatted value.

    Example::

        format_metric("cpu_percent", [83.7])      # "83 %"
        format_metric("latency_us", [1500000])    # "1 seconds"
    """
    return format_value(key, samples[0] if samples else None, policy)


def is_alert(
    key: str,
    samples: Sequence[object] | None,
    policy: AlertPolicy = DEFAULT_POLICY,
) -> bool:
    """Return True if the newest sample of *key* breaches its severity rule."""
    threshold = classify(key, policy).alert_threshold
    if threshold is None:
        return False
    value = latest_sample(samples)
    return value is not None and value > threshold


SPARKLINE_BLOCKS = "▁▂▃▄▅▆▇█"


def sparkline(samples: Sequence[object] | None, width: int = 20) -> str:
    """Render the newest *width* samples as block characters, oldest first.

    Missing or non-finite samples become a space. A flat series renders as
    the lowest block.

    Example::

        sparkline([3, 2, 1, 0])    # "▁▃▆█"
    """
    if not samples or width <= 0:
        return ""
    window = list(samples[:width])
    window.reverse()

    numbers = [value for value in window if latest_sample([value]) is not None]
    if not numbers:
        return " " * len(window)
    low = min(numbers)
    span = max(numbers) - low
    top = len(SPARKLINE_BLOCKS) - 1

    chars: list[str] = []
    for value in window:
        if latest_sample([value]) is None:
            chars.append(" ")
        elif span <= 0:
            chars.append(SPARKLINE_BLOCKS[0])
        else:
            index = round((value - low) / span * top)
            chars.append(SPARKLINE_BLOCKS[max(0, min(top, index))])
    return "".join(chars)
