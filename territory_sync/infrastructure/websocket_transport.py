"""WebSocket Transport — text-message transport for the push channel, wrapped for error mapping.

Invariants:
    - Every websockets/OS failure is mapped to TransportError (core/errors.py)
    - recv() returns one text message; binary messages are decoded as UTF-8
    - close() never raises

Design Decisions:
    - Transport as a Protocol: ConnectionManager depends on send/recv/close only, so
      tests substitute an in-memory fake (ADR: mock at the network boundary)
    - websockets keepalive pings disabled: STOMP heart-beats own liveness detection
"""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from territory_sync.core.errors import TransportError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, data: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[], Awaitable[Transport]]


class WebSocketTransport:
    """Transport over a websockets client connection."""

    def __init__(self, connection: ClientConnection):
        self._ws = connection

    @classmethod
    async def connect(
        cls,
        url: str,
        open_timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> "WebSocketTransport":
        try:
            ws = await connect(
                url,
                open_timeout=open_timeout,
                additional_headers=headers,
                ping_interval=None,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise TransportError(f"WebSocket connect to {url} failed: {e}")
        return cls(ws)

    async def send(self, data: str) -> None:
        try:
            await self._ws.send(data)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"WebSocket send failed: {e}")

    async def recv(self) -> str:
        try:
            message = await self._ws.recv()
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"WebSocket closed: {e}")
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self) -> None:
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug("WebSocket close failed: %s", e)


def websocket_transport_factory(
    url: str,
    open_timeout: float = 10.0,
    session_cookie: str | None = None,
) -> TransportFactory:
    """Factory bound to one endpoint. The session cookie rides on the upgrade request."""
    headers = {"Cookie": f"token={session_cookie}"} if session_cookie else None

    async def factory() -> Transport:
        return await WebSocketTransport.connect(url, open_timeout, headers)

    return factory
