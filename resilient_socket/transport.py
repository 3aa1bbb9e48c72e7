"""
Underlying connection primitives.

``Transport`` is the boundary the connection manager consumes: a single
connection attempt that exposes ``ready_state``, ``send`` and ``close`` and
reports its lifecycle through four handler attributes. A transport never
reconnects on its own.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import suppress
from enum import IntEnum
from typing import Any, Callable, Dict, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from loguru import logger

from .events import CloseEvent, ErrorEvent, MessageEvent, OpenEvent
from .exceptions import ConnectionFailure


class ReadyState(IntEnum):
    """Connection ready states, numbered like the browser WebSocket API"""
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


Handler = Optional[Callable[[Any], None]]


class Transport(ABC):
    """A single underlying connection attempt."""

    def __init__(self, uri: str):
        self.uri = uri
        self.on_open: Handler = None
        self.on_close: Handler = None
        self.on_message: Handler = None
        self.on_error: Handler = None

    @property
    @abstractmethod
    def ready_state(self) -> ReadyState:
        """Current state of the connection."""

    @abstractmethod
    def send(self, text: str) -> None:
        """Send a text frame. Only valid while OPEN."""

    @abstractmethod
    def close(self, code: int = 1000, reason: str = "") -> None:
        """Request closure. The close signal arrives later."""

    def _emit(self, handler: Handler, event: Any) -> None:
        if handler is not None:
            handler(event)


TransportFactory = Callable[[str], Transport]


class WebSocketTransport(Transport):
    """Transport backed by a ``websockets`` client connection.

    The connection attempt starts in a background task as soon as the
    instance is created, so it must be created inside a running event loop.
    Outbound texts go through a FIFO queue drained by a writer task.
    """

    def __init__(
        self,
        uri: str,
        open_timeout: Optional[float] = None,
        close_timeout: float = 10.0,
        max_size: Optional[int] = 2**20,
        **connect_options: Any
    ):
        super().__init__(uri)
        self._connect_kwargs: Dict[str, Any] = {
            'open_timeout': open_timeout,
            'close_timeout': close_timeout,
            'max_size': max_size,
            # liveness is handled by the manager's heartbeat
            'ping_interval': None,
        }
        self._connect_kwargs.update(connect_options)
        self._state = ReadyState.CONNECTING
        self._connection: Any = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._close_request: Optional[tuple] = None
        self._closed_emitted = False
        self._close_tasks: Set[asyncio.Task] = set()
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def send(self, text: str) -> None:
        if self._state != ReadyState.OPEN:
            raise ConnectionFailure(
                f"Cannot send on a {self._state.name.lower()} connection")
        self._outbox.put_nowait(text)

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return

        previous = self._state
        self._state = ReadyState.CLOSING
        self._close_request = (code, reason)

        if previous == ReadyState.CONNECTING:
            self._task.cancel()
        elif self._connection is not None:
            task = asyncio.get_running_loop().create_task(
                self._connection.close(code=code, reason=reason))
            self._close_tasks.add(task)
            task.add_done_callback(self._close_tasks.discard)

    async def _run(self) -> None:
        try:
            self._connection = await websockets.connect(self.uri, **self._connect_kwargs)
        except asyncio.CancelledError:
            code, reason = self._close_request or (1006, "Connection attempt cancelled")
            self._finish(CloseEvent(code=code, reason=reason))
            raise
        except Exception as e:
            logger.error(f"Connection to {self.uri} failed: {type(e).__name__}: {str(e)}")
            self._state = ReadyState.CLOSED
            self._emit(self.on_error, ErrorEvent(ConnectionFailure(str(e), details=e)))
            self._finish(CloseEvent(code=1006, reason=str(e)))
            return

        self._state = ReadyState.OPEN
        self._emit(self.on_open, OpenEvent(target=self.uri))

        writer = asyncio.get_running_loop().create_task(self._write_loop())
        try:
            async for message in self._connection:
                self._emit(self.on_message, MessageEvent(data=message))
        except ConnectionClosedError as e:
            self._emit(self.on_error, ErrorEvent(ConnectionFailure(str(e), details=e)))
        except ConnectionClosed:
            pass
        finally:
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer
            code = getattr(self._connection, 'close_code', None)
            reason = getattr(self._connection, 'close_reason', None) or ""
            self._finish(CloseEvent(code=code, reason=reason, was_clean=code == 1000))

    async def _write_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self._connection.send(text)
            except ConnectionClosed:
                return
            except Exception as e:
                logger.error(f"Failed to send message: {type(e).__name__}: {str(e)}")
                self._emit(self.on_error, ErrorEvent(ConnectionFailure(str(e), details=e)))
                await self._connection.close(code=1011, reason="Send failure")
                return

    def _finish(self, event: CloseEvent) -> None:
        self._state = ReadyState.CLOSED
        if self._closed_emitted:
            return
        self._closed_emitted = True
        self._emit(self.on_close, event)


def websocket_transport_factory(**connect_options: Any) -> TransportFactory:
    """Build a factory producing ``WebSocketTransport`` instances."""
    def factory(uri: str) -> Transport:
        return WebSocketTransport(uri, **connect_options)
    return factory
