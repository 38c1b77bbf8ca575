"""Coordinator wire protocol: state types, commands, envelopes and codecs.

Two protocol generations are supported through interchangeable adapters:
:class:`UnifiedAdapter` (``notify`` carries a partial state) and
:class:`LegacyAdapter` (``init`` snapshot followed by grid/report deltas).
"""

from __future__ import annotations

from loadgrid.protocol.adapters import (
    LegacyAdapter,
    ProtocolAdapter,
    UnifiedAdapter,
    create_adapter,
)
from loadgrid.protocol.codec import Codec, decode, encode
from loadgrid.protocol.commands import (
    AbortRun,
    Address,
    Block,
    Command,
    RemoveReport,
    RunOpts,
    RunPlan,
    StartRun,
)
from loadgrid.protocol.models import (
    UNSET,
    Report,
    ReportResult,
    Run,
    ScriptError,
    StateDelta,
)

__all__ = [
    "UNSET",
    "AbortRun",
    "Address",
    "Block",
    "Codec",
    "Command",
    "LegacyAdapter",
    "ProtocolAdapter",
    "RemoveReport",
    "Report",
    "ReportResult",
    "Run",
    "RunOpts",
    "RunPlan",
    "ScriptError",
    "StartRun",
    "StateDelta",
    "UnifiedAdapter",
    "create_adapter",
    "decode",
    "encode",
]
