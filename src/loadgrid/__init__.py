"""LoadGrid — control and telemetry client for a load-testing coordinator."""

from __future__ import annotations

from loadgrid.client.context import ClientContext
from loadgrid.client.protocol_client import ProtocolClient
from loadgrid.metrics.classifier import AlertPolicy, classify, format_metric, is_alert
from loadgrid.planning.builder import PlanInputs, build_run_plan
from loadgrid.planning.ramp import RampSizing, compute_ramp
from loadgrid.protocol.commands import Address, Block, RunOpts, RunPlan
from loadgrid.state.mirror import StateMirror
from loadgrid.transport.channel import BackoffPolicy, Channel

__version__ = "0.1.0"

__all__ = [
    "Address",
    "AlertPolicy",
    "BackoffPolicy",
    "Block",
    "Channel",
    "ClientContext",
    "PlanInputs",
    "ProtocolClient",
    "RampSizing",
    "RunOpts",
    "RunPlan",
    "StateMirror",
    "build_run_plan",
    "classify",
    "compute_ramp",
    "format_metric",
    "is_alert",
]
