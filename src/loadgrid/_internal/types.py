"""Shared type aliases for LoadGrid."""

from __future__ import annotations

from typing import Any

# One text frame on the wire (a JSON array).
Frame = str

# Decoded JSON object.
JsonObject = dict[str, Any]

# Telemetry series, most recent sample first; None marks a missing sample.
Samples = list[float | None]

# Telemetry keyed by metric name.
Stats = dict[str, Samples]
