"""
WebSocket transport adapter.

Wraps a Starlette/FastAPI ``WebSocket`` in the small interface the
coordinator uses.
"""

from typing import Optional, Union

from starlette.websockets import WebSocket, WebSocketState


class WebSocketTransport:
    """
    Relay-facing view of an accepted WebSocket.

    Example:
        @app.websocket("/many-to-many")
        async def endpoint(ws: WebSocket):
            await ws.accept()
            await coordinator.handle(WebSocketTransport(ws), Topology.MANY_TO_MANY)
    """

    def __init__(self, websocket: WebSocket):
        """
        Create transport wrapper.

        Args:
            websocket: Accepted Starlette WebSocket
        """
        self._ws = websocket
        self._closed = False

    async def receive(self) -> Optional[Union[str, bytes]]:
        """
        Receive the next frame.

        Returns:
            Message data (str for text, bytes for binary), or None once the
            client disconnected
        """
        if self._closed:
            return None

        message = await self._ws.receive()
        if message["type"] == "websocket.disconnect":
            self._closed = True
            return None

        data = message.get("text")
        if data is None:
            data = message.get("bytes") or b""
        return data

    async def send_text(self, text: str) -> None:
        """
        Send text message.

        Raises:
            RuntimeError: If connection is closed
        """
        if self._closed:
            raise RuntimeError("WebSocket connection is closed")

        await self._ws.send_text(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close WebSocket connection.

        Args:
            code: WebSocket close code (default: 1000 = normal closure)
            reason: Close reason string
        """
        if self._closed:
            return

        self._closed = True
        if self._ws.application_state != WebSocketState.DISCONNECTED:
            await self._ws.close(code=code, reason=reason)

    @property
    def is_open(self) -> bool:
        """Check if connection is open."""
        if self._closed:
            return False
        return self._ws.client_state == WebSocketState.CONNECTED

    @property
    def client(self) -> str:
        """Remote address as host:port, for logging."""
        if self._ws.client is None:
            return "unknown"
        return f"{self._ws.client.host}:{self._ws.client.port}"
