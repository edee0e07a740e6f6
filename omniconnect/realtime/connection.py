"""Socket handles the hub talks to."""

from abc import ABC, abstractmethod

from fastapi import WebSocket


class SocketHandle(ABC):
    """Transport-agnostic view of an agent socket."""

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """Send one text frame."""
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Send a protocol-level ping, where the transport exposes one."""
        pass

    @abstractmethod
    async def close(self, code: int = 1000) -> None:
        """Close the socket."""
        pass


class StarletteSocketHandle(SocketHandle):
    """
    SocketHandle over a FastAPI/Starlette WebSocket.

    ASGI does not expose protocol pings to the application; the server sends
    them itself (uvicorn ``ws_ping_interval``), so ``ping`` is a no-op here and
    liveness relies on the JSON ping frame.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def ping(self) -> None:
        return None

    async def close(self, code: int = 1000) -> None:
        await self.websocket.close(code=code)
