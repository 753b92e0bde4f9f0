"""
Shared fixtures for sockschain tests.
"""

import asyncio

import pytest


class FakeTransport(asyncio.Transport):
    """In-memory stand-in for the connection to a proxy server."""

    def __init__(self):
        super().__init__()
        self.protocol = None
        self.written = []
        self.reading = True
        self.closed = False

    def set_protocol(self, protocol):
        self.protocol = protocol

    def get_protocol(self):
        return self.protocol

    def write(self, data):
        self.written.append(bytes(data))

    def pause_reading(self):
        self.reading = False

    def resume_reading(self):
        self.reading = True

    def is_reading(self):
        return self.reading

    def is_closing(self):
        return self.closed

    def close(self):
        self.abort()

    def abort(self):
        if self.closed:
            return
        self.closed = True
        asyncio.get_running_loop().call_soon(self.protocol.connection_lost, None)

    def feed(self, data: bytes):
        """Deliver bytes as if the proxy had sent them."""
        self.protocol.data_received(data)

    def pop_written(self) -> bytes:
        data = b"".join(self.written)
        self.written.clear()
        return data


class RecordingProtocol(asyncio.Protocol):
    """Protocol a caller installs after the handshake."""

    def __init__(self):
        self.received = []

    def data_received(self, data):
        self.received.append(data)


class EventRecorder:
    """Collects the events a SocksClient emits."""

    def __init__(self, client):
        self.events = []
        for name in ("established", "bound", "error"):
            client.on(name, self._recorder(name))

    def _recorder(self, name):
        def record(info):
            self.events.append((name, info))
        return record

    @property
    def names(self):
        return [name for name, _ in self.events]

    def last(self, name):
        return [info for event, info in self.events if event == name][-1]


async def settle(rounds: int = 10):
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transport():
    return FakeTransport()
