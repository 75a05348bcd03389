"""Shared fixtures: in-memory snapshots, fixed-clock ids and a scriptable channel."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from companion_core.core.errors import TransportError
from companion_core.infrastructure.persistence import InMemoryStore
from companion_core.services import EntityStore, MonotonicIdGenerator, SessionManager

FROZEN_EPOCH = 1_700_000_000.0

_CLOSE = object()


class FakeChannel:
    """Channel whose incoming side is driven by the test."""

    def __init__(self) -> None:
        self.sent: list[Any] = []
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, payload: Any) -> None:
        if self._closed:
            raise TransportError("channel closed")
        self.sent.append(payload)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._incoming.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, payload: Any) -> None:
        self._incoming.put_nowait(payload)

    def drop(self) -> None:
        """Remote side closes the connection."""
        self._closed = True
        self._incoming.put_nowait(_CLOSE)

    def fail(self, error: Exception | None = None) -> None:
        """Transport failure while connected."""
        self._closed = True
        self._incoming.put_nowait(error or TransportError("connection reset"))

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._incoming.put_nowait(_CLOSE)


class FakeChannelFactory:
    def __init__(self) -> None:
        self.channels: list[FakeChannel] = []
        self.urls: list[str] = []
        # Number of upcoming opens that are refused
        self.refuse = 0
        # When set, opens block until the event is set
        self.gate: asyncio.Event | None = None

    async def __call__(self, url: str) -> FakeChannel:
        self.urls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.refuse > 0:
            self.refuse -= 1
            raise TransportError("connection refused")
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    @property
    def latest(self) -> FakeChannel:
        return self.channels[-1]


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(prefix="companion_")


@pytest.fixture
def ids() -> MonotonicIdGenerator:
    """Clock frozen on one millisecond, so every id comes from the collision guard."""
    return MonotonicIdGenerator(clock=lambda: FROZEN_EPOCH)


@pytest.fixture
def entities(store: InMemoryStore, ids: MonotonicIdGenerator) -> EntityStore:
    return EntityStore(store, ids=ids)


@pytest.fixture
def sessions(entities: EntityStore) -> SessionManager:
    return SessionManager(entities)
