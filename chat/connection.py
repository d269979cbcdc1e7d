from __future__ import annotations
import asyncio
import functools
import inspect
from contextlib import suppress
from typing import Any, Awaitable, Callable, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from common.config import DEFAULT_RECONNECT_DELAY
from common.errors import InvalidEndpointError, TransportError
from common.log import get_logger
from common.utils import is_ws_url

from .state import ConnectionState

logger = get_logger(__name__)


FrameHandler = Callable[[str], Union[Awaitable[None], None]]
ErrorHandler = Callable[[TransportError], None]
Connector = Callable[[str], Awaitable[Any]]

CONNECTION_LOST = "connection lost"

# Errors websockets.connect can raise while opening the connection
_HANDSHAKE_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionManager:
    """
    Owns one logical WebSocket connection and its up/down state.

    The connection is reported CONNECTED as soon as the handshake has been
    started; the handshake itself completes on the receive task. A failed
    handshake or a dropped connection moves the state back to DISCONNECTED
    and schedules a single reconnect after ``reconnect_delay`` seconds.
    """

    def __init__(
        self,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connector: Optional[Connector] = None,
        ping_interval: Optional[float] = 15.0,
        ping_timeout: Optional[float] = 45.0,
    ) -> None:
        self.url: Optional[str] = None
        self.state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self.reconnect_delay = reconnect_delay
        self.connect_attempts = 0
        self.reconnect_attempts = 0

        self._connector: Connector = connector or functools.partial(
            websockets.connect, ping_interval=ping_interval, ping_timeout=ping_timeout
        )
        self._websocket: Any = None
        self._handshake: Optional[asyncio.Future] = None
        self._recv_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        # Bumped on every connect/disconnect so stale receive tasks can tell they were replaced
        self._generation = 0

        self._frame_handlers: List[FrameHandler] = []
        self._error_handlers: List[ErrorHandler] = []
        self._listeners: List[Callable[[], None]] = []

    # ---- registration ----

    def on_frame(self, handler: FrameHandler) -> None:
        """Register a handler called with every inbound text frame, in arrival order."""
        self._frame_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        """Register a handler called when the connection is lost."""
        self._error_handlers.append(handler)

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback invoked after every state or error change."""
        self._listeners.append(listener)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    # ---- lifecycle ----

    async def connect(self, url: Optional[str] = None) -> None:
        """
        Start connecting to ``url`` (or the last used URL).

        Raises InvalidEndpointError for a malformed URL; in that case the state
        stays DISCONNECTED and no reconnect is scheduled. Does nothing if a
        connection is already up or being opened.
        """
        target = url if url is not None else self.url
        if self.state is not ConnectionState.DISCONNECTED:
            logger.debug("connect() ignored while %s", self.state.value, extra={"endpoint": target})
            return

        if not is_ws_url(target):
            self.last_error = f"Invalid URL: {target!r}"
            logger.warning("Refusing to connect: %s", self.last_error, extra={"endpoint": target})
            self._notify()
            raise InvalidEndpointError(self.last_error)

        self.url = target
        self._generation += 1
        self.connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)

        self._handshake = asyncio.get_running_loop().create_future()
        self._recv_task = asyncio.create_task(self._run(target, self._handshake, self._generation))

        self.last_error = None
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connecting to %s", target, extra={"endpoint": target})

    async def disconnect(self) -> None:
        """Close the connection with a normal-closure code and cancel any pending reconnect."""
        self._cancel_retry()
        if self.state is ConnectionState.DISCONNECTED and self._recv_task is None:
            return

        self._generation += 1
        websocket, self._websocket = self._websocket, None
        recv_task, self._recv_task = self._recv_task, None
        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_result(None)
        self._handshake = None
        self._set_state(ConnectionState.DISCONNECTED)

        if websocket is not None:
            try:
                await websocket.close(code=1000)
            except (OSError, WebSocketException) as e:
                logger.error("Error closing connection: %s", e)

        if recv_task is not None and recv_task is not asyncio.current_task():
            recv_task.cancel()
            with suppress(asyncio.CancelledError):
                await recv_task
        logger.info("Disconnected", extra={"endpoint": self.url})

    async def send(self, payload: str) -> None:
        """
        Send one text frame and return once the transport has taken it.

        Waits for a handshake still in flight. Raises TransportError if there is
        no connection or the frame cannot be written.
        """
        handshake = self._handshake
        if handshake is None:
            raise TransportError("not connected")

        websocket = await handshake
        if websocket is None:
            raise TransportError("connection could not be established")

        try:
            await websocket.send(payload)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"send failed: {e}") from e

    def record_error(self, description: Optional[str]) -> None:
        self.last_error = description
        self._notify()

    def status(self) -> dict:
        return {
            "url": self.url,
            "state": self.state.value,
            "last_error": self.last_error,
            "connect_attempts": self.connect_attempts,
            "reconnect_attempts": self.reconnect_attempts,
            "reconnect_pending": self.reconnect_pending,
            "reconnect_delay": self.reconnect_delay,
        }

    # ---- receive path ----

    async def _run(self, url: str, handshake: asyncio.Future, generation: int) -> None:
        try:
            websocket = await self._connector(url)
        except _HANDSHAKE_ERRORS as e:
            logger.warning("Handshake with %s failed: %s", url, e, extra={"endpoint": url})
            if not handshake.done():
                handshake.set_result(None)
            self._connection_lost(generation, e)
            return

        if generation != self._generation:
            # disconnect() ran while the handshake was in flight
            await websocket.close(code=1000)
            return

        self._websocket = websocket
        handshake.set_result(websocket)
        logger.info("Handshake with %s complete", url, extra={"endpoint": url})
        await self._receive_loop(websocket, generation)

    async def _receive_loop(self, websocket: Any, generation: int) -> None:
        """Deliver text frames one at a time, re-arming after each until the connection fails."""
        while True:
            try:
                frame = await websocket.recv()
            except (ConnectionClosed, OSError) as e:
                self._connection_lost(generation, e)
                return

            if isinstance(frame, (bytes, bytearray)):
                logger.debug("Ignoring binary frame (%d bytes)", len(frame))
                continue

            for handler in list(self._frame_handlers):
                try:
                    result = handler(frame)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Frame handler %r failed", handler)

    def _connection_lost(self, generation: int, cause: BaseException) -> None:
        if generation != self._generation:
            logger.debug("Ignoring loss of a replaced connection: %s", cause)
            return

        self._websocket = None
        self._recv_task = None
        self._handshake = None
        self.last_error = CONNECTION_LOST
        self._set_state(ConnectionState.DISCONNECTED)
        logger.warning("Connection to %s lost: %s", self.url, cause, extra={"endpoint": self.url})

        error = TransportError(f"{CONNECTION_LOST}: {cause}")
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Error handler %r failed", handler)

        self._schedule_reconnect()

    # ---- reconnection ----

    def _schedule_reconnect(self) -> None:
        if self.reconnect_pending:
            logger.debug("Reconnect already scheduled; not scheduling another")
            return
        logger.info("Reconnecting in %ss", self.reconnect_delay, extra={"endpoint": self.url})
        self._retry_task = asyncio.create_task(self._reconnect_later(self.reconnect_delay))

    async def _reconnect_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None

        if self.state is not ConnectionState.DISCONNECTED:
            logger.info("Skipping scheduled reconnect; already %s", self.state.value)
            return

        self.reconnect_attempts += 1
        try:
            await self.connect()
        except InvalidEndpointError as e:
            logger.error("Scheduled reconnect abandoned: %s", e)

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ---- notification ----

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("State listener %r failed", listener)
