"""Single logical connection to the remote agent with flat-interval reconnect.

States: disconnected -> connecting -> connected, with ``error`` as an
annotation set on transport failure. Every close that happens before
teardown schedules exactly one new attempt after the policy's delay.

Once :meth:`ConnectionManager.teardown` has run nothing is published any
more, including callbacks from opens or closes that were already in flight.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from companion_core.core.errors import ChannelUnavailableError
from companion_core.core.logging import get_logger
from companion_core.core.retry import FixedInterval, ReconnectPolicy

logger = get_logger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@runtime_checkable
class Channel(Protocol):
    """Full-duplex channel handed out while connected.

    Iterating yields incoming payloads until the channel closes; a transport
    failure surfaces as an exception from the iterator.
    """

    @property
    def closed(self) -> bool: ...

    async def send(self, payload: Any) -> None: ...

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[str], Awaitable[Channel]]
StatusListener = Callable[[ConnectionStatus, Channel | None], None]
MessageListener = Callable[[Any], None]


class ConnectionManager:
    """Owns the channel, the reconnect timer and the published status."""

    def __init__(
        self,
        url: str,
        channel_factory: ChannelFactory,
        policy: ReconnectPolicy | None = None,
    ):
        """
        Args:
            url: Agent endpoint, e.g. ``ws://localhost:8000/ws``
            channel_factory: Opens a channel to ``url``
            policy: Reconnect delay policy, 2 second flat interval by default
        """
        self.url = url
        self.policy = policy or FixedInterval(2.0)
        self._factory = channel_factory

        self._status = ConnectionStatus.DISCONNECTED
        self._channel: Channel | None = None
        self._task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._cleaning_up = False
        self._failures = 0

        self._status_listeners: list[StatusListener] = []
        self._message_listeners: list[MessageListener] = []

        # Number of connection attempts started
        self.attempts = 0

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def channel(self) -> Channel | None:
        """Connected channel, or None. Check before every send."""
        return self._channel

    @property
    def is_torn_down(self) -> bool:
        return self._cleaning_up

    @property
    def pending_reconnect(self) -> asyncio.TimerHandle | None:
        return self._reconnect_handle

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register for future transitions. Past transitions are not replayed."""
        self._status_listeners.append(listener)
        return lambda: self._remove(self._status_listeners, listener)

    def add_message_listener(self, listener: MessageListener) -> Callable[[], None]:
        self._message_listeners.append(listener)
        return lambda: self._remove(self._message_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def connect(self) -> None:
        """Start an attempt unless one is already running or we are torn down.

        Must be called from inside a running event loop.
        """
        if self._cleaning_up:
            return
        if self._task is not None and not self._task.done():
            return
        if self._status == ConnectionStatus.CONNECTED:
            return
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._start_attempt()

    async def send(self, payload: Any) -> None:
        channel = self._channel
        if channel is None or channel.closed:
            raise ChannelUnavailableError(details={"source": "connection_manager", "operation": "send"})
        await channel.send(payload)

    async def teardown(self) -> None:
        """Stop for good: cancel the timer, close the channel, silence callbacks.

        Safe to call more than once. An attempt that has not connected yet is
        cancelled, so no channel is opened after teardown.
        """
        if self._cleaning_up:
            return
        self._cleaning_up = True

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task = self._task
        if task is not None and not task.done() and self._channel is None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        channel, self._channel = self._channel, None
        if channel is not None and not channel.closed:
            await channel.close()
        logger.info("Connection torn down", url=self.url)

    def _start_attempt(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"connection:{self.url}")

    async def _run(self) -> None:
        if self._cleaning_up:
            return
        self.attempts += 1
        self._publish(ConnectionStatus.CONNECTING, None)

        try:
            channel = await self._factory(self.url)
        except Exception as e:
            self._on_error(e)
            self._on_close()
            return

        if self._cleaning_up:
            # Open resolved after teardown
            await channel.close()
            return

        self._failures = 0
        self._publish(ConnectionStatus.CONNECTED, channel)

        try:
            async for payload in channel:
                if self._cleaning_up:
                    break
                self._dispatch(payload)
        except Exception as e:
            self._on_error(e)

        self._on_close()

    def _on_error(self, error: Exception) -> None:
        if self._cleaning_up:
            return
        logger.warning("Transport error", url=self.url, error=str(error), error_kind=type(error).__name__)
        self._publish(ConnectionStatus.ERROR, None)

    def _on_close(self) -> None:
        if self._cleaning_up:
            return
        self._publish(ConnectionStatus.DISCONNECTED, None)

        self._failures += 1
        delay = self.policy.delay_for(self._failures)
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._reconnect)
        logger.debug("Reconnect scheduled", url=self.url, delay=delay, failures=self._failures)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._cleaning_up:
            return
        self._start_attempt()

    def _publish(self, status: ConnectionStatus, channel: Channel | None) -> None:
        if self._cleaning_up:
            return
        self._status = status
        self._channel = channel
        logger.info("Connection status changed", status=status.value, url=self.url)
        for listener in list(self._status_listeners):
            try:
                listener(status, channel)
            except Exception:
                logger.exception("Status listener failed", status=status.value)

    def _dispatch(self, payload: Any) -> None:
        for listener in list(self._message_listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("Message listener failed")
