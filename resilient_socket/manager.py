"""
Connection manager.

Keeps one logical connection to ``target`` alive on top of short-lived
``Transport`` instances: reconnects on close or error up to
``max_reconnect_attempts``, sends a heartbeat while open and holds the most
recent message sent while the transport is still connecting.

All work happens on the event loop the manager was created on. Signal
handlers, timers and public operations never run concurrently.
"""

import asyncio
import time
from functools import partial
from typing import Any, Callable, Coroutine, Dict, Mapping, Optional, Set, Union
from loguru import logger

from .config import SocketOptions
from .events import CloseEvent, ErrorEvent, EventManager, MessageEvent, OpenEvent
from .exceptions import ConnectionFailure, InvalidAddressError
from .state import ConnectionState, ConnectionStats
from .transport import ReadyState, Transport, TransportFactory, websocket_transport_factory
from .utils import serialize_message


class ConnectionManager:
    """Durable channel over a failure-prone transport.

    Construction starts the first connection attempt right away. Callers
    only ever use ``send``, ``close`` and the observers; failures surface
    through the callbacks and ``is_reconnect_exhausted``, never as
    exceptions.

    While the transport is connecting only the latest ``send`` is kept.
    An earlier held message is superseded and never delivered.

    Must be created inside a running event loop.

    Example:
        >>> async with ConnectionManager("ws://localhost:9547/", max_reconnect_attempts=3) as manager:
        ...     manager.send({"a": 1})
    """

    def __init__(
        self,
        target: str,
        options: Union[SocketOptions, Mapping[str, Any], None] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        **overrides: Any
    ):
        if not isinstance(target, str) or not target.strip():
            raise InvalidAddressError(details=target)

        if isinstance(options, SocketOptions):
            options = options.merged(**overrides)
        else:
            options = SocketOptions.from_mapping(options, **overrides)

        self.target = target
        self.options: SocketOptions = options
        self.stats = ConnectionStats()
        self.reconnect_attempts = 0

        self._loop = asyncio.get_running_loop()
        self._transport_factory = transport_factory or websocket_transport_factory()
        self._transport: Optional[Transport] = None
        self._generation = 0
        self._state = ConnectionState.CONNECTING
        self._reconnect_exhausted = False
        self._manually_closed = False
        self._terminal = asyncio.Event()

        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._pending_send_task: Optional[asyncio.Task[None]] = None
        self._connect_timeout_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._tasks: Set[asyncio.Task[None]] = set()

        self._events = EventManager()
        for event, callback in (('open', options.on_open),
                                ('close', options.on_close),
                                ('message', options.on_message),
                                ('error', options.on_error)):
            if callback is not None:
                self._events.add_callback(event, callback)

        self._establish()

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()
        await self._events.drain()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def is_reconnect_exhausted(self) -> bool:
        """True once the reconnect cap has been reached."""
        return self._reconnect_exhausted

    def add_callback(self, event: str, callback: Callable[..., Any]) -> bool:
        return self._events.add_callback(event, callback)

    def remove_callback(self, event: str, callback: Callable[..., Any]) -> bool:
        return self._events.remove_callback(event, callback)

    async def wait_closed(self) -> None:
        """Wait until the manager reaches a terminal state."""
        await self._terminal.wait()

    def health_check(self) -> Dict[str, Any]:
        """Snapshot of the connection state."""
        transport = self._transport
        return {
            "healthy": self.is_open,
            "state": self._state.value,
            "target": self.target,
            "reconnect_attempts": self.reconnect_attempts,
            "max_reconnect_attempts": self.options.max_reconnect_attempts,
            "reconnect_exhausted": self._reconnect_exhausted,
            "ready_state": transport.ready_state.name.lower() if transport else None,
            "heartbeat_active": self._heartbeat_task is not None,
            "pending_send": self._pending_send_task is not None,
            "stats": self.stats.to_dict(),
        }

    def send(self, payload: Any) -> None:
        """Send ``payload`` without blocking.

        Structured payloads are sent as JSON text, anything else as its
        string form. The message is dropped when no transport is owned or
        the transport is closing.
        """
        transport = self._transport
        if transport is None:
            self.stats.dropped_messages += 1
            logger.debug("No connection, message dropped")
            return

        message = serialize_message(payload)
        ready_state = transport.ready_state

        if ready_state == ReadyState.CONNECTING:
            self._hold_pending(message)
        elif ready_state == ReadyState.OPEN:
            self._deliver(transport, message)
        else:
            self.stats.dropped_messages += 1
            logger.warning("Connection is closed, message dropped. Send again later")

    def close(self, code: int = 1000, reason: str = "Client closed connection") -> None:
        """Close the connection for good. No reconnect follows."""
        self._manually_closed = True
        transport = self._transport

        if transport is None:
            self._clear_timers()
            if not self._state.is_terminal:
                self._set_state(ConnectionState.MANUALLY_CLOSED)
            return

        self._release()
        if transport.ready_state != ReadyState.CLOSED:
            try:
                transport.close(code, reason)
            except Exception as e:
                logger.warning(f"Error closing connection: {type(e).__name__}: {str(e)}")

        self._set_state(ConnectionState.MANUALLY_CLOSED)
        logger.info(f"Connection to {self.target} closed by client")
        self._events.emit('close', CloseEvent(code=code, reason=reason, was_clean=True, manual=True))

    def _establish(self) -> None:
        if self._transport is not None:
            logger.debug("A connection already exists, not creating another")
            return

        if self._manually_closed:
            return

        if self.reconnect_attempts >= self.options.max_reconnect_attempts:
            logger.warning("Reconnect limit reached, the connection will stay closed")
            self._mark_exhausted()
            return

        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)
        self.stats.connects += 1

        try:
            transport = self._transport_factory(self.target)
        except Exception as e:
            logger.error(f"Failed to create connection: {type(e).__name__}: {str(e)}")
            # retry on the next loop iteration so repeated failures do not nest
            self._fail(ErrorEvent(ConnectionFailure(str(e), details=e)), deferred=True)
            return

        transport.on_open = partial(self._handle_open, generation)
        transport.on_close = partial(self._handle_close, generation)
        transport.on_message = partial(self._handle_message, generation)
        transport.on_error = partial(self._handle_error, generation)
        self._transport = transport
        logger.debug(f"Connecting to {self.target} (generation {generation})")

        if self.options.connect_timeout is not None:
            self._connect_timeout_task = self._create_task(self._connect_watchdog(generation))

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._transport is not None

    def _handle_open(self, generation: int, event: OpenEvent) -> None:
        if not self._is_current(generation):
            logger.debug(f"Ignoring open from stale connection (generation {generation})")
            return

        logger.info(f"Connected to {self.target}")
        self._cancel(self._connect_timeout_task)
        self._connect_timeout_task = None
        self.reconnect_attempts = 0
        self._reconnect_exhausted = False
        self.stats.opens += 1
        self.stats.connection_time = time.time()
        self._set_state(ConnectionState.OPEN)

        self._events.emit('open', event)
        if self._is_current(generation):
            self._start_heartbeat(generation)

    def _handle_close(self, generation: int, event: CloseEvent) -> None:
        if not self._is_current(generation):
            logger.debug(f"Ignoring close from stale connection (generation {generation})")
            return

        logger.warning(f"Connection closed (code={event.code}, reason={event.reason!r})")
        self._events.emit('close', event)
        if not self._is_current(generation):
            return

        self._release()
        self._after_failure()

    def _handle_error(self, generation: int, event: ErrorEvent) -> None:
        if not self._is_current(generation):
            logger.debug(f"Ignoring error from stale connection (generation {generation})")
            return

        self._fail(event)

    def _handle_message(self, generation: int, event: MessageEvent) -> None:
        if not self._is_current(generation):
            return

        self.stats.messages_received += 1
        self.stats.update_activity()
        logger.debug(f"Received message: {str(event.data)[:100]}")
        self._events.emit('message', event)

    def _fail(self, event: ErrorEvent, deferred: bool = False) -> None:
        """Route a failure of the current transport into the reconnect decision."""
        generation = self._generation
        self.stats.errors += 1
        logger.error(f"Connection error: {type(event.error).__name__}: {str(event.error)}")
        self._events.emit('error', event)
        if generation != self._generation or self._manually_closed:
            return

        transport = self._transport
        self._release()
        if transport is not None and transport.ready_state not in (ReadyState.CLOSING, ReadyState.CLOSED):
            try:
                transport.close(1011, "Connection error")
            except Exception as e:
                logger.debug(f"Error closing failed connection: {type(e).__name__}: {str(e)}")

        self._after_failure(deferred)

    def _after_failure(self, deferred: bool = False) -> None:
        if self._manually_closed:
            return

        if not self.options.reconnect_enabled:
            self._set_state(ConnectionState.CLOSED)
            return

        if self.reconnect_attempts >= self.options.max_reconnect_attempts:
            logger.warning("Maximum reconnect attempts exceeded")
            self._mark_exhausted()
            return

        self._reconnect_exhausted = False
        self.reconnect_attempts += 1
        self.stats.reconnects += 1
        self._set_state(ConnectionState.CLOSED_RETRY_PENDING)
        logger.info(
            f"Reconnecting to {self.target} "
            f"(attempt {self.reconnect_attempts}/{self.options.max_reconnect_attempts})...")
        self._events.emit('reconnect', self.reconnect_attempts)

        if self.options.reconnect_interval > 0 or deferred:
            self._reconnect_task = self._create_task(self._delayed_reconnect())
        else:
            self._establish()

    async def _delayed_reconnect(self) -> None:
        await asyncio.sleep(self.options.reconnect_interval)
        self._reconnect_task = None
        self._establish()

    def _mark_exhausted(self) -> None:
        self._reconnect_exhausted = True
        if self._state != ConnectionState.CLOSED_EXHAUSTED:
            self._set_state(ConnectionState.CLOSED_EXHAUSTED)
            self._events.emit('exhausted', self.reconnect_attempts)

    def _release(self) -> None:
        """Drop the owned transport and every timer tied to it."""
        self._clear_timers()
        self._transport = None
        self.stats.connection_time = None

    def _start_heartbeat(self, generation: int) -> None:
        self._cancel(self._heartbeat_task)
        self._heartbeat_task = None
        self._send_heartbeat()
        if self._is_current(generation):
            self._heartbeat_task = self._create_task(self._heartbeat_loop(generation))

    async def _heartbeat_loop(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.options.heartbeat_interval)
            if not self._is_current(generation):
                return
            self._send_heartbeat()
            # a failed heartbeat releases the transport
            if not self._is_current(generation):
                return

    def _send_heartbeat(self) -> None:
        transport = self._transport
        if transport is not None and transport.ready_state == ReadyState.OPEN:
            logger.trace("Sending heartbeat")
            self._deliver(transport, self.options.heartbeat_message, heartbeat=True)

    def _hold_pending(self, message: str) -> None:
        if self._pending_send_task is not None:
            self._cancel(self._pending_send_task)
            self.stats.superseded_messages += 1
            logger.debug("Held message superseded by a newer one")
        self._pending_send_task = self._create_task(self._pending_send(self._generation, message))

    async def _pending_send(self, generation: int, message: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.options.pending_send_interval)
                if not self._is_current(generation):
                    return
                transport = self._transport
                if transport.ready_state == ReadyState.CONNECTING:
                    continue
                if transport.ready_state == ReadyState.OPEN:
                    self._deliver(transport, message)
                return
        finally:
            if self._pending_send_task is asyncio.current_task(self._loop):
                self._pending_send_task = None

    async def _connect_watchdog(self, generation: int) -> None:
        await asyncio.sleep(self.options.connect_timeout)
        if not self._is_current(generation):
            return
        if self._transport.ready_state != ReadyState.CONNECTING:
            return
        self._connect_timeout_task = None
        self._fail(ErrorEvent(ConnectionFailure(
            f"Connection to {self.target} timed out after {self.options.connect_timeout}s")))

    def _deliver(self, transport: Transport, message: str, heartbeat: bool = False) -> None:
        try:
            transport.send(message)
        except Exception as e:
            logger.error(f"Failed to send message: {type(e).__name__}: {str(e)}")
            if transport is self._transport:
                self._fail(ErrorEvent(ConnectionFailure(str(e), details=e)))
            return

        if heartbeat:
            self.stats.heartbeats_sent += 1
        else:
            self.stats.messages_sent += 1
            logger.debug(f"Sent message: {message[:100]}")
        self.stats.update_activity()

    def _clear_timers(self) -> None:
        for task in (self._heartbeat_task, self._pending_send_task,
                     self._connect_timeout_task, self._reconnect_task):
            self._cancel(task)
        self._heartbeat_task = None
        self._pending_send_task = None
        self._connect_timeout_task = None
        self._reconnect_task = None

    def _cancel(self, task: Optional[asyncio.Task[None]]) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task(self._loop):
            task.cancel()

    def _create_task(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task: asyncio.Task[None] = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _set_state(self, state: ConnectionState) -> None:
        old_state = self._state
        self._state = state
        if old_state != state:
            logger.debug(f"Connection state changed: {old_state.value} -> {state.value}")
        if state.is_terminal:
            self._terminal.set()
