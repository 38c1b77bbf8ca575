"""Shared plumbing for CLI commands that talk to a coordinator."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console

from loadgrid._internal.config import load_config
from loadgrid._internal.errors import ConfigError, LoadGridError
from loadgrid._internal.logging import get_logger, setup_logging
from loadgrid.client.context import ClientContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from loadgrid._internal.config import ClientConfig

console = Console(stderr=True)

logger = get_logger("cli.session")

#: Seconds to wait for the first coordinator state before giving up.
SYNC_TIMEOUT = 30.0

COORDINATOR_HELP = "Coordinator WebSocket URL (default: $LOADGRID_COORDINATOR_URL or ws://localhost:8000/ws)."
LEGACY_HELP = "Speak the legacy init/notify coordinator protocol."
VERBOSE_HELP = "Enable verbose (DEBUG) logging."


def _install_uvloop() -> None:
    """Install uvloop as the default event loop policy if available.

    Falls back silently to the default asyncio event loop on Windows
    or if uvloop is not installed.
    """
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


def build_config(coordinator: str | None, *, legacy: bool) -> ClientConfig:
    """Load configuration from the environment and apply CLI overrides.

    Raises:
        ConfigError: If the environment holds invalid values.
    """
    config = load_config()
    overrides: dict[str, Any] = {}
    if coordinator:
        if not coordinator.startswith(("ws://", "wss://")):
            msg = f"--coordinator must be a ws:// or wss:// URL, got: {coordinator!r}"
            raise ConfigError(msg)
        overrides["coordinator_url"] = coordinator
    if legacy:
        overrides["protocol"] = "legacy"
    return dataclasses.replace(config, **overrides) if overrides else config


def run_session(
    coordinator: str | None,
    *,
    legacy: bool,
    verbose: bool,
    body: Callable[[ClientContext], Awaitable[None]],
) -> None:
    """Connect, wait for the first state, run *body*, then disconnect.

    Any :class:`LoadGridError` is printed in red and turned into exit
    code 1.

    Args:
        coordinator: Coordinator URL override, None keeps the configured one.
        legacy: Use the legacy protocol.
        verbose: Log at DEBUG instead of WARNING.
        body: Coroutine function run with the synced context.
    """

    async def _main(config: ClientConfig) -> None:
        async with ClientContext(config) as ctx:
            await ctx.wait_synced(timeout=SYNC_TIMEOUT)
            await body(ctx)

    try:
        config = build_config(coordinator, legacy=legacy)
        setup_logging(
            logging.DEBUG if verbose else logging.WARNING,
            log_format=config.log_format,
            console=console,
        )
        _install_uvloop()
        asyncio.run(_main(config))
    except LoadGridError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130) from None
