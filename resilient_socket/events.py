import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from loguru import logger


EVENTS = ('open', 'close', 'message', 'error', 'reconnect', 'exhausted')


@dataclass(frozen=True)
class OpenEvent:
    """The underlying connection became writable"""
    target: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CloseEvent:
    """The underlying connection closed"""
    code: Optional[int] = None
    reason: str = ""
    was_clean: bool = False
    manual: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MessageEvent:
    """An inbound payload, passed through unmodified"""
    data: Any
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ErrorEvent:
    """The underlying connection reported a failure"""
    error: BaseException
    timestamp: float = field(default_factory=time.time)


class EventManager:
    """Dispatches connection events to user callbacks.

    Callbacks run inline in registration order. When a callback returns an
    awaitable (a coroutine function) it is scheduled on the running loop
    and tracked until it finishes.
    A failing callback is logged and never reaches the caller.
    """

    def __init__(self):
        self._callbacks: Dict[str, list] = {event: [] for event in EVENTS}
        self._running_tasks: Set[asyncio.Task[Optional[Any]]] = set()

    def add_callback(self, event: str, callback: Callable[..., Any]) -> bool:
        """Add event callback.

        Args:
            event: Event name
            callback: Callback function

        Returns:
            True if the event is known, False otherwise
        """
        if event not in self._callbacks:
            logger.warning(f"Unknown event: {event}")
            return False
        if callback not in self._callbacks[event]:
            self._callbacks[event].append(callback)
            logger.debug(f"Added callback for event: {event}")
        return True

    def remove_callback(self, event: str, callback: Callable[..., Any]) -> bool:
        """Remove event callback.

        Returns:
            True if callback was removed, False otherwise
        """
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)
            logger.debug(f"Removed callback for event: {event}")
            return True
        return False

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every callback registered for ``event``."""
        callbacks = list(self._callbacks.get(event, ()))
        if not callbacks:
            logger.trace(f"No callbacks for event: {event}")
            return

        for callback in callbacks:
            result = self._safe_sync_callback(callback, *args)
            if inspect.isawaitable(result):
                task: asyncio.Task[Optional[Any]] = asyncio.ensure_future(self._safe_callback(result))
                self._running_tasks.add(task)
                task.add_done_callback(self._running_tasks.discard)

    async def drain(self) -> None:
        """Wait for scheduled coroutine callbacks to finish."""
        while self._running_tasks:
            await asyncio.gather(*list(self._running_tasks), return_exceptions=True)

    async def _safe_callback(self, awaitable: Awaitable[Any]) -> Optional[Any]:
        try:
            return await awaitable
        except Exception as e:
            logger.error(f"Async callback error: {type(e).__name__}: {str(e)}")
            return None

    def _safe_sync_callback(self, callback: Callable[..., Any], *args: Any) -> Optional[Any]:
        try:
            return callback(*args)
        except Exception as e:
            logger.error(f"Sync callback error: {type(e).__name__}: {str(e)}")
            return None
