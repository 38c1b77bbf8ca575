"""Reconnecting WebSocket channel to the coordinator.

The :class:`Channel` keeps one ``aiohttp`` WebSocket open in a background
task and reconnects with exponential backoff whenever it drops. Messaging is
at-most-once: frames handed to :meth:`Channel.send` while the socket is down
are dropped, and frames still queued when a connection dies are discarded
with it, so nothing is ever replayed into a later connection.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp

from loadgrid._internal.errors import ConnectionLostError
from loadgrid._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from loadgrid._internal.types import Frame

logger = get_logger("transport.channel")


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential reconnect delay schedule.

    Attributes:
        initial_delay: Seconds before the first reconnect attempt.
        max_delay: Upper bound on any single delay.
        multiplier: Growth factor applied after each failed attempt.
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 1.5

    def delays(self) -> Iterator[float]:
        """Yield successive reconnect delays, forever.

        Yields:
            ``initial_delay``, then each previous delay times ``multiplier``,
            capped at ``max_delay``.
        """
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(self.max_delay, delay * self.multiplier)


class Channel:
    """Duplex text channel that reconnects on its own.

    Lifecycle signals are plain callbacks, all invoked on the event loop
    that called :meth:`connect`:

    - ``on_connected()`` after every successful (re)connect,
    - ``on_received(frame)`` for every inbound text frame, one at a time,
    - ``on_disconnected()`` after every lost connection.

    A channel is single-use: once :meth:`disconnect` has been called its
    listeners are detached for good.

    Attributes:
        url: Coordinator URL, set by :meth:`connect`.
    """

    def __init__(
        self,
        *,
        on_connected: Callable[[], None] | None = None,
        on_received: Callable[[Frame], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
        backoff: BackoffPolicy | None = None,
        heartbeat: float | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            on_connected: Called after each successful connect.
            on_received: Called with the text of each inbound frame.
            on_disconnected: Called after each lost connection.
            backoff: Reconnect delay schedule. Defaults to ``BackoffPolicy()``.
            heartbeat: WebSocket ping interval in seconds, None disables.
        """
        self._on_connected = on_connected
        self._on_received = on_received
        self._on_disconnected = on_disconnected
        self._backoff = backoff or BackoffPolicy()
        self._heartbeat = heartbeat

        self.url: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[Frame] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        """Return True while a connection is established."""
        return self._outbox is not None and not self._closing

    def connect(self, url: str) -> None:
        """Start connecting to *url* in a background task.

        Must be called from a running event loop. Returns immediately; the
        ``on_connected`` callback reports when the socket is up.

        Args:
            url: ``ws://`` or ``wss://`` URL of the coordinator.

        Raises:
            RuntimeError: If the channel is already connecting or has been
                disconnected.
        """
        if self._closing:
            msg = "Channel has been disconnected and cannot be reused"
            raise RuntimeError(msg)
        if self._task is not None:
            msg = "Channel is already connected"
            raise RuntimeError(msg)

        self.url = url
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run(url), name="loadgrid-channel")

    def send(self, frame: Frame) -> bool:
        """Queue *frame* for delivery on the current connection.

        Never blocks. Safe to call from any thread. When no connection is
        open the frame is dropped rather than held for the next one.

        Args:
            frame: Frame text to send.

        Returns:
            True if the frame was handed to an open connection, False if it
            was dropped.
        """
        loop = self._loop
        outbox = self._outbox
        if self._closing or loop is None or outbox is None:
            logger.debug("Channel closed, dropping frame: %s", frame)
            return False

        if _running_loop() is loop:
            self._enqueue(outbox, frame)
        else:
            loop.call_soon_threadsafe(self._enqueue, outbox, frame)
        return True

    def _enqueue(self, outbox: asyncio.Queue[Frame], frame: Frame) -> None:
        # The connection may have been replaced while a cross-thread send
        # was in flight
        if outbox is not self._outbox:
            logger.debug("Connection changed, dropping frame: %s", frame)
            return
        outbox.put_nowait(frame)

    async def flush(self) -> None:
        """Wait until every frame queued on the current connection is written.

        Frames discarded because the connection dropped count as done.
        """
        outbox = self._outbox
        if outbox is not None:
            await outbox.join()

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting.

        Listeners are detached before the connection task is cancelled, so
        no callback fires once this returns. Idempotent.
        """
        if self._closing:
            return
        self._closing = True
        self._on_connected = None
        self._on_received = None
        self._on_disconnected = None

        task = self._task
        loop = self._loop
        if task is None or loop is None or task.done():
            return
        if _running_loop() is loop:
            task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)
        logger.debug("Channel disconnect requested")

    async def wait_closed(self) -> None:
        """Wait for the connection task to finish after :meth:`disconnect`."""
        task = self._task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def _run(self, url: str) -> None:
        delays = self._backoff.delays()
        async with aiohttp.ClientSession() as session:
            while not self._closing:
                logger.info("Connecting to coordinator at %s", url, extra={"url": url})
                try:
                    async with session.ws_connect(url, heartbeat=self._heartbeat) as ws:
                        delays = self._backoff.delays()
                        await self._serve(ws)
                except ConnectionLostError as exc:
                    logger.info("Coordinator connection lost: %s", exc)
                except (aiohttp.ClientError, OSError) as exc:
                    logger.info("Coordinator unavailable: %s", str(exc) or type(exc).__name__)

                if self._closing:
                    break
                delay = next(delays)
                logger.info("Reconnecting in %.1fs", delay, extra={"url": url, "delay": delay})
                await asyncio.sleep(delay)
        logger.debug("Channel loop finished")

    async def _serve(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Pump one connection until it closes.

        Raises:
            ConnectionLostError: When the socket closes or errors.
        """
        outbox: asyncio.Queue[Frame] = asyncio.Queue()
        self._outbox = outbox
        sender = asyncio.create_task(self._send_loop(ws, outbox), name="loadgrid-channel-sender")
        logger.info("Connected to coordinator")
        try:
            self._emit(self._on_connected)
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    logger.debug("Received frame: %s", message.data)
                    self._emit(self._on_received, message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    msg = f"socket error: {ws.exception()}"
                    raise ConnectionLostError(msg)
                else:
                    logger.debug("Ignoring %s message", message.type.name)
            msg = f"closed by coordinator (code={ws.close_code})"
            raise ConnectionLostError(msg)
        finally:
            self._outbox = None
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            dropped = _discard(outbox)
            if dropped:
                logger.info("Dropped %d unsent frame(s) with the lost connection", dropped)
            self._emit(self._on_disconnected)

    async def _send_loop(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        outbox: asyncio.Queue[Frame],
    ) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send_str(frame)
                logger.debug("Sent frame: %s", frame)
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
                logger.warning("Dropping frame, send failed: %s", exc)
            finally:
                outbox.task_done()

    def _emit(self, callback: Callable[..., None] | None, *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            # A failing consumer must not take the connection down with it
            logger.exception("Channel callback %s failed", getattr(callback, "__name__", callback))


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _discard(outbox: asyncio.Queue[Frame]) -> int:
    dropped = 0
    while True:
        try:
            outbox.get_nowait()
        except asyncio.QueueEmpty:
            return dropped
        outbox.task_done()
        dropped += 1
