"""Protocol adapters: one per coordinator protocol generation.

An adapter owns the codec for its protocol and converts every decoded
envelope into :class:`~loadgrid.protocol.models.StateDelta` values, so the
protocol client and the state mirror only ever see the unified shape. The
adapter is picked from configuration at connect time; frames are never
sniffed to guess which protocol the coordinator speaks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from loadgrid._internal.errors import ConfigError
from loadgrid._internal.logging import get_logger
from loadgrid.protocol.codec import LEGACY_PARSERS, UNIFIED_PARSERS, Codec
from loadgrid.protocol.envelopes import GridChanged, Init, Notify, ReportAdded, ReportRemoved
from loadgrid.protocol.models import StateDelta

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadgrid._internal.config import ProtocolName
    from loadgrid._internal.types import Frame
    from loadgrid.protocol.commands import Command
    from loadgrid.protocol.envelopes import Envelope, Grid

logger = get_logger("protocol.adapters")


class ProtocolAdapter(ABC):
    """Abstract base for coordinator protocol adapters.

    Attributes:
        name: Protocol name used in configuration.
        codec: Codec for this protocol's tags.
    """

    name: str = ""

    def __init__(self, codec: Codec) -> None:
        self.codec = codec

    def encode(self, commands: Iterable[Command]) -> Frame:
        """Encode a command batch for this protocol."""
        return self.codec.encode(commands)

    def decode(self, frame: Frame | bytes) -> list[StateDelta]:
        """Decode *frame* and adapt each envelope, preserving frame order.

        Args:
            frame: Raw frame text.

        Returns:
            Unified deltas, in the order their envelopes appeared.
        """
        deltas: list[StateDelta] = []
        for envelope in self.codec.decode(frame):
            deltas.extend(self.adapt(envelope))
        return deltas

    @abstractmethod
    def adapt(self, envelope: Envelope) -> list[StateDelta]:
        """Convert one envelope into zero or more unified deltas."""


class UnifiedAdapter(ProtocolAdapter):
    """Current coordinators: ``notify`` carries a partial state as-is."""

    name = "unified"

    def __init__(self) -> None:
        super().__init__(Codec(UNIFIED_PARSERS, start_run_tag="start_run"))

    def adapt(self, envelope: Envelope) -> list[StateDelta]:
        if isinstance(envelope, Notify):
            return [envelope.state]
        logger.warning("Unified protocol ignores %s envelope", type(envelope).__name__)
        return []


class LegacyAdapter(ProtocolAdapter):
    """Two-phase coordinators: one ``init`` snapshot, then deltas.

    ``init`` becomes a delta carrying every field, including the full
    report list. ``grid_changed`` carries a complete grid, so fields its
    telemetry omits (the script error) are cleared rather than kept.
    Report deltas become incremental ``report_added`` / ``report_removed``
    edits.
    """

    name = "legacy"

    def __init__(self) -> None:
        super().__init__(Codec(LEGACY_PARSERS, start_run_tag="run_plan"))

    def adapt(self, envelope: Envelope) -> list[StateDelta]:
        if isinstance(envelope, Init):
            return [_grid_delta(envelope.grid, reports=envelope.reports)]
        if isinstance(envelope, GridChanged):
            return [_grid_delta(envelope.grid)]
        if isinstance(envelope, ReportAdded):
            return [StateDelta(report_added=envelope.report)]
        if isinstance(envelope, ReportRemoved):
            return [StateDelta(report_removed=envelope.report_id)]
        logger.warning("Legacy protocol ignores %s envelope", type(envelope).__name__)
        return []


def _grid_delta(grid: Grid, **extra: object) -> StateDelta:
    telemetry = grid.telemetry
    return StateDelta(
        generator_count=telemetry.generator_count,
        stats=dict(telemetry.stats),
        run=grid.run,
        last_script_error=telemetry.last_script_error,
        **extra,  # type: ignore[arg-type]
    )


_ADAPTERS: dict[str, type[ProtocolAdapter]] = {
    UnifiedAdapter.name: UnifiedAdapter,
    LegacyAdapter.name: LegacyAdapter,
}


def create_adapter(name: ProtocolName | str) -> ProtocolAdapter:
    """Instantiate the adapter registered under *name*.

    Raises:
        ConfigError: If no adapter has that name.
    """
    adapter_cls = _ADAPTERS.get(name)
    if adapter_cls is None:
        msg = f"Unknown protocol: {name!r}. Choose from: {', '.join(_ADAPTERS)}"
        raise ConfigError(msg)
    return adapter_cls()
