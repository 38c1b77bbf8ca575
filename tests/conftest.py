"""Shared test fixtures for LoadGrid test suite."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
import threading
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import WSMsgType, web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _restore_loadgrid_logger() -> Iterator[None]:
    """Undo logging setup done by CLI commands so caplog keeps working."""
    logger = logging.getLogger("loadgrid")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:], logger.level, logger.propagate = saved


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Coordinator stub
# =============================================================================


def _initial_state() -> dict[str, Any]:
    return {
        "generator_count": 0,
        "stats": {},
        "run": None,
        "reports": [],
        "last_script_error": None,
    }


class CoordinatorStub:
    """In-process coordinator speaking the unified protocol on ``/ws``.

    Every new connection first receives the full state as one ``notify``.
    Commands are recorded in :attr:`received` and, when ``respond`` is set,
    answered the way a coordinator would: ``start_run`` sets the run,
    ``abort_run`` clears it, ``remove_report`` drops the report. With
    ``auto_finish`` a started run immediately ends and leaves a report.
    """

    def __init__(self, state: dict[str, Any] | None = None) -> None:
        self.state = _initial_state()
        self.state.update(state or {})
        self.respond = True
        self.auto_finish = False
        self.received: list[Any] = []
        self.connections = 0
        self.url = ""
        self._sockets: set[web.WebSocketResponse] = set()
        self._received_event: asyncio.Event | None = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handler)
        return app

    async def _handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._sockets.add(ws)
        self.connections += 1
        try:
            await ws.send_str(json.dumps([{"notify": self.state}]))
            async for message in ws:
                if message.type == WSMsgType.TEXT:
                    await self._handle(json.loads(message.data))
        finally:
            self._sockets.discard(ws)
        return ws

    async def _handle(self, elements: list[Any]) -> None:
        for element in elements:
            self.received.append(element)
            if self._received_event is not None:
                self._received_event.set()
            if not self.respond:
                continue
            if element == "abort_run":
                await self.notify(run=None)
            elif "start_run" in element:
                await self._start(element["start_run"])
            elif "remove_report" in element:
                report_id = element["remove_report"]["id"]
                await self.notify(
                    reports=[r for r in self.state["reports"] if r["id"] != report_id],
                )

    async def _start(self, plan: dict[str, Any]) -> None:
        run = {
            "id": f"run-{len(self.state['reports']) + 1}",
            "name": plan["name"],
            "state": "rampup",
            "remaining_ms": 900_000,
        }
        await self.notify(run=run)
        if self.auto_finish:
            report = {
                "id": run["id"],
                "name": run["name"],
                "maximums": {"cpu_percent": 42.0, "generator_count": 1},
                "result": {"csv_url": "http://results.example/run.csv"},
            }
            await self.notify(run=None, reports=[*self.state["reports"], report])

    async def notify(self, **changes: Any) -> None:
        """Update the stub state and push the change to every client."""
        self.state.update(changes)
        await self.send_raw(json.dumps([{"notify": changes}]))

    async def send_raw(self, frame: str) -> None:
        """Send *frame* verbatim to every connected client."""
        for ws in list(self._sockets):
            if ws.closed:
                continue
            with contextlib.suppress(ConnectionResetError):
                await ws.send_str(frame)

    async def drop_connections(self) -> None:
        """Close every client connection from the server side."""
        for ws in list(self._sockets):
            await ws.close()

    async def wait_received(self, count: int, timeout: float = 5.0) -> list[Any]:
        """Wait until at least *count* command elements have arrived."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.received) < count:
            self._received_event = asyncio.Event()
            remaining = deadline - loop.time()
            if remaining <= 0:
                msg = f"Expected {count} commands, got {self.received}"
                raise AssertionError(msg)
            try:
                await asyncio.wait_for(self._received_event.wait(), remaining)
            except asyncio.TimeoutError:
                continue
        return self.received


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def coordinator() -> AsyncIterator[CoordinatorStub]:
    """Coordinator stub on a free local port, in the test's event loop.

    ``coordinator.url`` is the ``ws://`` URL clients connect to.
    """
    stub = CoordinatorStub()
    port = _get_free_port()
    runner = web.AppRunner(stub.app())
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    stub.url = f"ws://127.0.0.1:{port}/ws"
    yield stub
    await stub.drop_connections()
    await runner.cleanup()


@pytest.fixture
def unused_url() -> str:
    """A ``ws://`` URL nothing listens on."""
    return f"ws://127.0.0.1:{_get_free_port()}/ws"


@pytest.fixture
def sync_coordinator() -> Iterator[CoordinatorStub]:
    """Coordinator stub running in a background thread for sync tests.

    Useful for CLI tests where the command runs its own event loop and
    blocks the main thread.
    """
    stub = CoordinatorStub()
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(stub.app())
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    stub.url = f"ws://127.0.0.1:{port}/ws"
    yield stub

    if loop_holder:
        asyncio.run_coroutine_threadsafe(stub.drop_connections(), loop_holder[0]).result(timeout=5.0)
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)
