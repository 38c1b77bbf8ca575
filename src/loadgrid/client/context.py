"""Explicit wiring of config, protocol client and state mirror.

A :class:`ClientContext` is built once at the entry point and passed to
whatever needs it. There is no module-level client or mirror.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loadgrid._internal.errors import ConnectionLostError
from loadgrid._internal.logging import get_logger
from loadgrid.client.protocol_client import ProtocolClient
from loadgrid.metrics.classifier import AlertPolicy
from loadgrid.planning.builder import build_run_plan
from loadgrid.planning.ramp import compute_ramp
from loadgrid.protocol.adapters import create_adapter
from loadgrid.state.mirror import StateMirror
from loadgrid.transport.channel import BackoffPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadgrid._internal.config import ClientConfig
    from loadgrid.planning.builder import PlanInputs
    from loadgrid.planning.ramp import RampSizing
    from loadgrid.protocol.commands import RunPlan

logger = get_logger("client.context")


class ClientContext:
    """Everything one coordinator session needs.

    The mirror is cleared on every (re)connect so a fresh coordinator
    snapshot never mixes with state from a previous connection.

    Attributes:
        config: Effective configuration.
        url: Coordinator URL this context connects to.
        mirror: Local copy of coordinator state.
        policy: Alert thresholds for metric display.
        client: Protocol client feeding the mirror.

    Example::

        async with ClientContext(load_config()) as ctx:
            await ctx.wait_synced(timeout=10)
            print(ctx.mirror.generator_count)
    """

    def __init__(self, config: ClientConfig) -> None:
        """Build the mirror, the adapter and the client from *config*.

        Raises:
            ConfigError: If ``config.protocol`` names no known adapter.
        """
        self.config = config
        self.url = config.coordinator_url
        self.mirror = StateMirror()
        self.policy = AlertPolicy(cpu_threshold=config.cpu_alert_percent)
        self.client = ProtocolClient(
            create_adapter(config.protocol),
            on_update=self.mirror.apply,
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
            backoff=BackoffPolicy(
                initial_delay=config.reconnect_delay,
                max_delay=config.reconnect_max_delay,
                multiplier=config.reconnect_multiplier,
            ),
            heartbeat=config.heartbeat or None,
        )

    async def __aenter__(self) -> ClientContext:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def start(self) -> None:
        """Start connecting to the coordinator."""
        self.client.connect(self.url)

    async def close(self) -> None:
        """Flush pending commands, then disconnect and wait for the channel."""
        await self.client.flush()
        self.client.disconnect()
        await self.client.wait_closed()

    def _on_connected(self) -> None:
        self.mirror.clear()

    def _on_disconnected(self) -> None:
        logger.debug("Disconnected from %s", self.url)

    # ------------------------------------------------------------------
    # Waiting on state
    # ------------------------------------------------------------------

    async def wait_for(
        self,
        predicate: Callable[[StateMirror], bool],
        timeout: float | None = None,
    ) -> None:
        """Wait until *predicate* holds for the mirror.

        The predicate is checked immediately and again after every mirror
        change.

        Args:
            predicate: Condition on the mirror.
            timeout: Seconds to wait, None waits forever.

        Raises:
            ConnectionLostError: If *timeout* elapses first.
        """
        if predicate(self.mirror):
            return

        done = asyncio.Event()

        def _check(mirror: StateMirror) -> None:
            if predicate(mirror):
                done.set()

        unsubscribe = self.mirror.subscribe(_check)
        try:
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            msg = f"Timed out after {timeout}s waiting for coordinator at {self.url}"
            raise ConnectionLostError(msg) from None
        finally:
            unsubscribe()

    async def wait_synced(self, timeout: float | None = None) -> None:
        """Wait until the first state has arrived on the current connection."""
        await self.wait_for(lambda mirror: mirror.synced, timeout)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def ramp_sizing(self, desired_size: int) -> RampSizing:
        """Size *desired_size* for the generators currently connected."""
        return compute_ramp(
            self.mirror.generator_count,
            desired_size,
            multiplier=self.config.ramp_multiplier,
        )

    def build_plan(self, inputs: PlanInputs) -> RunPlan:
        """Build a validated run plan for the current fleet.

        Raises:
            ValidationError: If the inputs do not make a runnable plan.
        """
        return build_run_plan(
            inputs,
            self.mirror.generator_count,
            multiplier=self.config.ramp_multiplier,
        )
