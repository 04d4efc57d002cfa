"""
Push connection transports for the live-update channel.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Union

import websockets


class PushConnection(ABC):
    """An open push connection yielding raw inbound frames."""

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send one outbound control frame."""
        pass

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        """Iterate inbound frames until the connection closes."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class PushTransport(ABC):
    """Opens push connections. connect() raises on a failed handshake."""

    @abstractmethod
    async def connect(self, url: str) -> PushConnection:
        pass


class WebSocketConnection(PushConnection):
    def __init__(self, websocket):
        self._ws = websocket

    async def send(self, message: str) -> None:
        await self._ws.send(message)

    async def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        try:
            async for message in self._ws:
                yield message
        except websockets.ConnectionClosed:
            return

    async def close(self) -> None:
        await self._ws.close()


class WebSocketTransport(PushTransport):
    def __init__(self, open_timeout: float = 10.0):
        self.open_timeout = open_timeout

    async def connect(self, url: str) -> PushConnection:
        websocket = await websockets.connect(url, open_timeout=self.open_timeout)
        return WebSocketConnection(websocket)
