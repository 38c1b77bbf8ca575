"""Typed command/update surface over a :class:`Channel`.

Outbound, the client validates and encodes commands through the active
protocol adapter and hands the frame to the channel. Inbound, every frame is
decoded by the same adapter and each resulting delta is delivered, in frame
order, to the single ``on_update`` callback.

Frames are applied in arrival order within one connection. There are no
sequence numbers, so ordering across a reconnect is not guaranteed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loadgrid._internal.logging import get_logger
from loadgrid.protocol.commands import AbortRun, RemoveReport, StartRun
from loadgrid.transport.channel import Channel

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadgrid._internal.types import Frame
    from loadgrid.protocol.adapters import ProtocolAdapter
    from loadgrid.protocol.commands import Command, RunPlan
    from loadgrid.protocol.models import StateDelta
    from loadgrid.transport.channel import BackoffPolicy

logger = get_logger("client.protocol")


class ProtocolClient:
    """Send run commands and receive state deltas over one channel.

    Attributes:
        adapter: Protocol adapter in use for this client.
    """

    def __init__(
        self,
        adapter: ProtocolAdapter,
        *,
        on_update: Callable[[StateDelta], None],
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
        backoff: BackoffPolicy | None = None,
        heartbeat: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            adapter: Protocol adapter that encodes commands and decodes
                frames.
            on_update: Called with each decoded delta, in frame order.
            on_connected: Called after each successful (re)connect.
            on_disconnected: Called after each lost connection.
            backoff: Reconnect delay schedule for the channel.
            heartbeat: WebSocket ping interval in seconds, None disables.
        """
        self.adapter = adapter
        self._on_update = on_update
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._backoff = backoff
        self._heartbeat = heartbeat
        self._channel: Channel | None = None
        # Bumped by connect and disconnect; a frame stops delivering once it changes
        self._generation = 0

    @property
    def is_connected(self) -> bool:
        """Return True while the channel has an open connection."""
        return self._channel is not None and self._channel.is_open

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, url: str) -> None:
        """Open a new channel to *url*, replacing any previous one.

        Must be called from a running event loop.
        """
        self._generation += 1
        if self._channel is not None:
            self._channel.disconnect()
        self._channel = Channel(
            on_connected=self._handle_connected,
            on_received=self._handle_frame,
            on_disconnected=self._handle_disconnected,
            backoff=self._backoff,
            heartbeat=self._heartbeat,
        )
        logger.debug("Using %s protocol", self.adapter.name)
        self._channel.connect(url)

    def disconnect(self) -> None:
        """Close the channel. No callback fires once this returns."""
        self._generation += 1
        if self._channel is not None:
            self._channel.disconnect()

    async def flush(self) -> None:
        """Wait until every command already sent has been written."""
        if self._channel is not None:
            await self._channel.flush()

    async def wait_closed(self) -> None:
        """Wait for the channel task to finish after :meth:`disconnect`."""
        if self._channel is not None:
            await self._channel.wait_closed()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_run(self, plan: RunPlan) -> bool:
        """Validate *plan* and send one start command.

        Args:
            plan: Run plan to start.

        Returns:
            True if the command reached an open connection.

        Raises:
            ValidationError: If the plan fails local checks. Nothing is
                sent in that case.
        """
        plan.validate()
        return self._send(StartRun(plan))

    def abort_run(self) -> bool:
        """Ask the coordinator to abort the active run."""
        return self._send(AbortRun())

    def remove_report(self, report_id: str) -> bool:
        """Ask the coordinator to delete the report with *report_id*."""
        return self._send(RemoveReport(report_id))

    def _send(self, command: Command) -> bool:
        frame = self.adapter.encode([command])
        if self._channel is None:
            logger.debug("Not connected, dropping %s", type(command).__name__)
            return False
        sent = self._channel.send(frame)
        if not sent:
            logger.warning("Coordinator not connected, %s was not sent", type(command).__name__)
        return sent

    # ------------------------------------------------------------------
    # Channel callbacks
    # ------------------------------------------------------------------

    def _handle_connected(self) -> None:
        if self._on_connected is not None:
            self._on_connected()

    def _handle_disconnected(self) -> None:
        if self._on_disconnected is not None:
            self._on_disconnected()

    def _handle_frame(self, frame: Frame) -> None:
        generation = self._generation
        for delta in self.adapter.decode(frame):
            if self._generation != generation:
                logger.debug("Channel closed mid-frame, dropping remaining deltas")
                return
            self._on_update(delta)
