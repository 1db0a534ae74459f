"""Duplex message channels for realtime synthesis sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Union
from urllib.parse import quote

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ChannelClosed, RealtimeConnectionError

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


class DuplexChannel(Protocol):
    """Ordered, message-oriented, bidirectional transport.

    ``recv`` raises ``ChannelClosed`` once the transport is gone; so does
    ``send``.
    """

    async def send(self, frame: str) -> None: ...

    async def recv(self) -> Frame: ...

    async def close(self) -> None: ...


Connector = Callable[[], Awaitable[DuplexChannel]]


class WebSocketChannel:
    """``DuplexChannel`` over a ``websockets`` client connection."""

    def __init__(self, connection: ClientConnection):
        self._connection = connection

    async def send(self, frame: str) -> None:
        try:
            await self._connection.send(frame)
        except ConnectionClosed as exc:
            raise ChannelClosed(f"websocket closed: {exc}") from exc

    async def recv(self) -> Frame:
        try:
            return await self._connection.recv()
        except ConnectionClosed as exc:
            raise ChannelClosed(f"websocket closed: {exc}") from exc

    async def close(self) -> None:
        await self._connection.close()


def realtime_url(base_url: str, model: str) -> str:
    """Derive the realtime websocket endpoint from the HTTP API base URL."""

    url = base_url.rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://"):]
    url = url.replace("/api/v1", "/api-ws/v1/realtime", 1)
    return f"{url}?model={quote(model, safe='')}"


def websocket_connector(
    url: str,
    api_key: Optional[str] = None,
    *,
    open_timeout: float = 10.0,
) -> Connector:
    """Return a connector that dials ``url`` and wraps it as a channel."""

    headers = {"Authorization": f"Bearer {api_key}"} if api_key else None

    async def _connect() -> DuplexChannel:
        logger.info(f"Connecting realtime websocket: {url.split('?', 1)[0]}")
        try:
            connection = await connect(
                url,
                additional_headers=headers,
                open_timeout=open_timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise RealtimeConnectionError(f"cannot connect to WebSocket: {exc}") from exc
        return WebSocketChannel(connection)

    return _connect


__all__ = [
    "Connector",
    "DuplexChannel",
    "Frame",
    "WebSocketChannel",
    "realtime_url",
    "websocket_connector",
]
