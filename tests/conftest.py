"""
Shared fixtures: an in-memory transport the tests drive by hand.
"""

import asyncio
from typing import List

import pytest

from resilient_socket.events import CloseEvent, ErrorEvent, MessageEvent, OpenEvent
from resilient_socket.exceptions import ConnectionFailure
from resilient_socket.transport import ReadyState, Transport


class FakeTransport(Transport):
    """Transport double whose signals are fired explicitly."""

    def __init__(self, uri: str):
        super().__init__(uri)
        self._ready_state = ReadyState.CONNECTING
        self.sent: List[str] = []
        self.close_calls: List[tuple] = []
        self.fail_send = False

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    def send(self, text: str) -> None:
        if self.fail_send:
            raise OSError("broken pipe")
        if self._ready_state != ReadyState.OPEN:
            raise ConnectionFailure("not open")
        self.sent.append(text)

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self._ready_state != ReadyState.CLOSED:
            self._ready_state = ReadyState.CLOSING

    def open(self) -> None:
        self._ready_state = ReadyState.OPEN
        self._emit(self.on_open, OpenEvent(target=self.uri))

    def receive(self, data) -> None:
        self._emit(self.on_message, MessageEvent(data=data))

    def fail(self, error: Exception = None) -> None:
        self._emit(self.on_error, ErrorEvent(error or ConnectionFailure("boom")))

    def drop(self, code: int = 1006, reason: str = "abnormal closure") -> None:
        self._ready_state = ReadyState.CLOSED
        self._emit(self.on_close, CloseEvent(code=code, reason=reason))


class FakeTransportFactory:
    """Records every transport the manager creates."""

    def __init__(self, auto_open: bool = False):
        self.created: List[FakeTransport] = []
        self.auto_open = auto_open

    def __call__(self, uri: str) -> FakeTransport:
        transport = FakeTransport(uri)
        self.created.append(transport)
        if self.auto_open:
            asyncio.get_running_loop().call_soon(transport.open)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def open_factory() -> FakeTransportFactory:
    return FakeTransportFactory(auto_open=True)
