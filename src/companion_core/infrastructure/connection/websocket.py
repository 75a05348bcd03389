"""aiohttp WebSocket channel to the remote agent."""

import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from companion_core.core.base import ServiceErrorDetails
from companion_core.core.errors import TransportError
from companion_core.core.logging import get_logger
from companion_core.infrastructure.persistence import to_snapshot

logger = get_logger(__name__)


def _decode_text(data: str) -> Any:
    try:
        return json.loads(data)
    except ValueError:
        return data


class AiohttpChannel:
    """Adapts ``ClientWebSocketResponse`` to the Channel protocol.

    Outgoing: ``str`` goes out as a text frame, ``bytes`` as a binary frame,
    anything else is JSON encoded into a text frame. Incoming text frames are
    JSON decoded when possible.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, url: str):
        self._ws = ws
        self.url = url

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, payload: Any) -> None:
        try:
            if isinstance(payload, str):
                await self._ws.send_str(payload)
            elif isinstance(payload, bytes | bytearray):
                await self._ws.send_bytes(bytes(payload))
            else:
                await self._ws.send_str(json.dumps(to_snapshot(payload)))
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise TransportError(
                message=f"Send failed: {e}",
                details=ServiceErrorDetails(
                    source="aiohttp_channel",
                    operation="send",
                    service_name="agent",
                    endpoint=self.url,
                ),
            ) from e

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._receive()

    async def _receive(self) -> AsyncIterator[Any]:
        # aiohttp stops iteration by itself on CLOSE / CLOSING / CLOSED
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield _decode_text(msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(
                    message=f"WebSocket error: {self._ws.exception()}",
                    details=ServiceErrorDetails(
                        source="aiohttp_channel",
                        operation="receive",
                        service_name="agent",
                        endpoint=self.url,
                        status_code=self._ws.close_code,
                    ),
                )

    async def close(self) -> None:
        await self._ws.close()


class AiohttpChannelFactory:
    """Opens channels through one shared ``aiohttp.ClientSession``."""

    def __init__(self, heartbeat: float | None = None):
        self.heartbeat = heartbeat
        self._session: aiohttp.ClientSession | None = None

    async def __call__(self, url: str) -> AiohttpChannel:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        try:
            ws = await self._session.ws_connect(url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(
                message=f"Could not open channel to {url}: {e}",
                details=ServiceErrorDetails(
                    source="aiohttp_channel_factory",
                    operation="open",
                    service_name="agent",
                    endpoint=url,
                    status_code=getattr(e, "status", None),
                ),
            ) from e
        logger.debug("WebSocket opened", url=url)
        return AiohttpChannel(ws, url)

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
