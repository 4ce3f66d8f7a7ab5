"""
P2000 WebSocket feed connection with keepalive and automatic reconnection.

Holds one persistent connection to the public P2000 feed, decodes each JSON
frame into a Message and hands it to the registered handler in frame order.

Liveness is tracked with a read deadline rather than the websockets library's
built-in keepalive: every received frame and every pong pushes the deadline
out by PING_INTERVAL + PONG_TIMEOUT (40s). A connection that stays silent past
its deadline is treated as dead, closed, and re-established with exponential
backoff (1s → 2s → 4s → … → 30s cap, reset after each successful handshake).

Connection status changes are published on a single-slot queue. Publishing
never blocks: if the observer has not consumed the previous status, the new
one is dropped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Optional

import websockets
from websockets.asyncio.client import ClientConnection

from p2000_forwarder.connectors.base_connector import BaseConnector, MessageHandler
from p2000_forwarder.connectors.models import Message, decode_message

logger = logging.getLogger(__name__)

FEED_URL = "wss://p2000.riekeltbrands.nl/websocket"

_STOPPED = object()
_TIMED_OUT = object()


class ConnectionPhase(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


@dataclass
class ConnectionState:
    """
    Mutable connection state, owned by a single FeedConnection.

    Only the FeedConnection's run() task mutates it. The status queue is the one
    piece shared with an outside observer.
    """

    backoff: float
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    ws: Optional[ClientConnection] = None
    read_deadline: float = 0.0
    status: asyncio.Queue[bool] = field(default_factory=lambda: asyncio.Queue(maxsize=1))


class FeedConnection(BaseConnector):
    """
    Streams P2000 messages from the upstream WebSocket until shut down.

    Usage (Forwarder):
        feed = FeedConnection(handler=forwarder.handle_message)
        await asyncio.gather(feed.run(), monitor(feed.status_updates()))
        await feed.close()
    """

    _INITIAL_BACKOFF_SECONDS = 1.0
    _MAX_BACKOFF_SECONDS = 30.0
    _BACKOFF_MULTIPLIER = 2
    _PING_INTERVAL_SECONDS = 30.0
    _PONG_TIMEOUT_SECONDS = 10.0
    _WRITE_TIMEOUT_SECONDS = 10.0
    _HEALTH_WINDOW_SECONDS = 300.0

    def __init__(self, handler: Optional[MessageHandler] = None, url: str = FEED_URL) -> None:
        """
        Args:
            handler: Called once per decoded Message on the read loop. It may be a
                coroutine function; it is awaited before the next frame is read,
                so it must not block indefinitely.
            url: Feed endpoint. Defaults to the public P2000 feed.
        """
        super().__init__(url=url, handler=handler)
        self._state = ConnectionState(backoff=self._INITIAL_BACKOFF_SECONDS)
        self._created_at = time.monotonic()
        self._last_message_at: Optional[float] = None  # None until first frame received
        self._stop: asyncio.Event = asyncio.Event()
        self._close_lock: asyncio.Lock = asyncio.Lock()

    @property
    def read_window(self) -> float:
        return self._PING_INTERVAL_SECONDS + self._PONG_TIMEOUT_SECONDS

    @property
    def backoff(self) -> float:
        return self._state.backoff

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    @property
    def is_connected(self) -> bool:
        return self._state.phase is ConnectionPhase.CONNECTED

    @property
    def health_window(self) -> float:
        return self._HEALTH_WINDOW_SECONDS

    # ------------------------------------------------------------------
    # BaseConnector abstract method implementations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """
        Setup-only: validates the feed URL and logs it.

        The actual WebSocket connection is established inside run().
        """
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError(f"FeedConnection requires a ws:// or wss:// url, got {self.url!r}")
        logger.info("FeedConnection configured | url=%s", self.url)

    def decode(self, payload: str | bytes) -> Message:
        return decode_message(payload)

    def health_check(self) -> bool:
        """
        Return True if connected and a frame arrived within the last 5 minutes.

        Before the first frame the window is measured from construction, so a
        freshly started connection is not reported stale.
        """
        if not self.is_connected:
            return False
        since = self.seconds_since_last_message()
        if since is None:
            since = time.monotonic() - self._created_at
        return since < self._HEALTH_WINDOW_SECONDS

    def seconds_since_last_message(self) -> Optional[float]:
        if self._last_message_at is None:
            return None
        return time.monotonic() - self._last_message_at

    def shutdown(self) -> None:
        """Signal run() and the keepalive task to exit at their next wait."""
        self._stop.set()
        logger.info("FeedConnection shutdown requested")

    async def close(self) -> None:
        """
        Stop the connection and release the socket.

        Idempotent and safe to call when no socket is open. Sends a close frame
        when a socket is open.
        """
        self.shutdown()
        await self._close_socket()
        self._state.phase = ConnectionPhase.CLOSED
        logger.info("FeedConnection closed")

    # ------------------------------------------------------------------
    # Status feed
    # ------------------------------------------------------------------

    async def status_updates(self) -> AsyncIterator[bool]:
        """
        Yield connection status changes (True = connected) as they are published.

        Intended for a single consumer. Statuses published while the previous
        one is still unconsumed are dropped.
        """
        while True:
            yield await self._state.status.get()

    def _notify_status(self, connected: bool) -> None:
        try:
            self._state.status.put_nowait(connected)
        except asyncio.QueueFull:
            logger.debug("FeedConnection status slot full, dropping | connected=%s", connected)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Connection coroutine: runs until shutdown() or close() is called.

        Any connect or read failure is logged, reported as disconnected and
        retried after the current backoff. Failures are never fatal.
        """
        self.connect()
        logger.info("FeedConnection starting | url=%s", self.url)
        try:
            while not self._stop.is_set():
                try:
                    await self._listen_once()
                except Exception as exc:
                    if self._stop.is_set():
                        break
                    self._state.phase = ConnectionPhase.DISCONNECTED
                    self._notify_status(False)
                    logger.warning(
                        "FeedConnection error, reconnecting in %.1fs | error=%s",
                        self._state.backoff,
                        exc,
                    )
                    if await self._unless_stopped(asyncio.sleep(self._state.backoff)) is _STOPPED:
                        break
                    self._increase_backoff()
        finally:
            await self._close_socket()
            self._state.phase = ConnectionPhase.CLOSED
            logger.info("FeedConnection stopped")

    async def _listen_once(self) -> None:
        """
        Open one WebSocket session and read frames until failure or stop.

        Raises on connect failure, read failure or read-deadline expiry; returns
        normally only when a stop was requested.
        """
        self._state.phase = ConnectionPhase.CONNECTING
        logger.info("FeedConnection connecting | url=%s", self.url)

        ws = await self._unless_stopped(self._open_socket())
        if ws is _STOPPED:
            return

        self._state.ws = ws
        self._reset_backoff()
        self._state.phase = ConnectionPhase.CONNECTED
        self._notify_status(True)
        self._extend_read_deadline()
        logger.info("FeedConnection connected | url=%s", self.url)

        keepalive = asyncio.create_task(self._keepalive(ws))
        try:
            while True:
                frame = await self._next_frame(ws)
                if frame is _STOPPED:
                    self._state.phase = ConnectionPhase.SHUTTING_DOWN
                    return
                self._extend_read_deadline()
                self._last_message_at = time.monotonic()
                await self.dispatch(frame)
        finally:
            keepalive.cancel()
            await asyncio.wait({keepalive})
            await self._close_socket()

    async def _open_socket(self) -> ClientConnection:
        # Library keepalive is off; _keepalive() and the read deadline replace it.
        return await websockets.connect(
            self.url,
            ping_interval=None,
            ping_timeout=None,
            open_timeout=self._WRITE_TIMEOUT_SECONDS,
            close_timeout=self._WRITE_TIMEOUT_SECONDS,
        )

    async def _next_frame(self, ws: ClientConnection) -> Any:
        """Wait for the next frame, honouring a read deadline that pongs may extend."""
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._state.read_deadline - loop.time()
            if remaining <= 0:
                raise TimeoutError(f"no frame or pong within {self.read_window:.0f}s")
            frame = await self._unless_stopped(ws.recv(), timeout=remaining)
            if frame is not _TIMED_OUT:
                return frame

    async def _keepalive(self, ws: ClientConnection) -> None:
        """Ping every PING_INTERVAL until stopped, cancelled or a ping fails to send."""
        while True:
            if await self._unless_stopped(asyncio.sleep(self._PING_INTERVAL_SECONDS)) is _STOPPED:
                return
            try:
                pong_waiter = await asyncio.wait_for(ws.ping(), self._WRITE_TIMEOUT_SECONDS)
            except Exception as exc:
                logger.error("FeedConnection failed to send ping | error=%s", exc)
                return
            asyncio.ensure_future(pong_waiter).add_done_callback(self._on_pong)

    def _on_pong(self, pong_waiter: asyncio.Future) -> None:
        # Waiters of a closed connection complete with ConnectionClosed.
        if pong_waiter.cancelled() or pong_waiter.exception() is not None:
            return
        self._extend_read_deadline()
        logger.debug("FeedConnection pong received")

    async def _close_socket(self) -> None:
        async with self._close_lock:
            ws, self._state.ws = self._state.ws, None
            if ws is None:
                return
            try:
                await ws.close()
            except Exception as exc:
                logger.warning("FeedConnection close failed | error=%s", exc)

    async def _unless_stopped(self, awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """
        Await `awaitable` unless the stop event fires or `timeout` elapses first.

        Returns the awaitable's result, _STOPPED, or _TIMED_OUT. The abandoned
        operation is cancelled before returning.
        """
        task = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait(
                {task, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop.cancel()

        if task not in done:
            task.cancel()
            await asyncio.wait({task})
            if task.cancelled() or task.exception() is not None:
                return _STOPPED if self._stop.is_set() else _TIMED_OUT
        return task.result()

    # ------------------------------------------------------------------
    # Backoff / deadline helpers
    # ------------------------------------------------------------------

    def _increase_backoff(self) -> None:
        self._state.backoff = min(
            self._state.backoff * self._BACKOFF_MULTIPLIER, self._MAX_BACKOFF_SECONDS
        )

    def _reset_backoff(self) -> None:
        self._state.backoff = self._INITIAL_BACKOFF_SECONDS

    def _extend_read_deadline(self) -> None:
        self._state.read_deadline = asyncio.get_running_loop().time() + self.read_window
