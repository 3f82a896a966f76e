"""
Signaling client.

Connects to a relay endpoint, joins a session and turns relay frames into
calls on an ``EventSink``. Useful for Python peers (e.g. aiortc based) and
for exercising a running relay.
"""

import asyncio
import json
import logging
from typing import Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from .signaling.protocol import (
    ErrorMessage,
    HostLeftMessage,
    JoinedMessage,
    JoinMessage,
    LeaveMessage,
    PeerJoinedMessage,
    PeerLeftMessage,
    RelayedSignal,
    SignalMessage,
    decode_server_message,
    encode,
)
from .signaling.types import PeerId, SessionId, Topology

logger = logging.getLogger(__name__)


class EventSink:
    """
    Receiver of signaling events. Override what you need; everything
    defaults to a no-op.
    """

    def on_open(self, joined: JoinedMessage) -> None:
        """Join accepted; ``joined.peers`` lists who to negotiate with."""

    def on_message(self, sender: PeerId, payload: str) -> None:
        """Payload relayed from another peer."""

    def on_peer_joined(self, peer_id: PeerId) -> None:
        pass

    def on_peer_left(self, peer_id: PeerId) -> None:
        pass

    def on_host_left(self, peer_id: PeerId) -> None:
        pass

    def on_error(self, code: int, reason: str) -> None:
        pass

    def on_close(self, code: Optional[int], reason: str) -> None:
        pass


class SignalingClient:
    """
    Client for one relay session.

    Example:
        ```python
        class Printer(EventSink):
            def on_message(self, sender, payload):
                print(sender, payload)

        client = SignalingClient("ws://localhost:9001", Topology.MANY_TO_MANY,
                                 "room-1", Printer())
        await client.connect()
        asyncio.create_task(client.run())
        await client.send(json.dumps({"sdp": offer}), recipient=2)
        ```
    """

    def __init__(
        self,
        url: str,
        topology: Topology,
        session_id: SessionId,
        sink: Optional[EventSink] = None,
    ):
        """
        Create a signaling client.

        Args:
            url: Relay base URL (``ws://host:port``)
            topology: Endpoint to connect to
            session_id: Session to join
            sink: Event receiver
        """
        self.url = url.rstrip("/")
        self.topology = topology
        self.session_id = session_id
        self.sink = sink or EventSink()

        self.peer_id: Optional[PeerId] = None
        self.host: Optional[PeerId] = None
        self._ws = None

    @property
    def endpoint(self) -> str:
        return f"{self.url}{self.topology.path}"

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the endpoint and send the join request."""
        self._ws = await websockets.connect(self.endpoint)
        await self._ws.send(encode(JoinMessage(session_id=self.session_id)))
        logger.debug(f"Joining {self.topology.value} session {self.session_id!r}")

    async def wait_joined(self, timeout: float = 5.0) -> PeerId:
        """
        Wait for the join acknowledgement without starting ``run``.

        Raises:
            RuntimeError: If the relay answered with anything but ``joined``
        """
        if self._ws is None:
            raise RuntimeError("Client not connected")

        raw = await asyncio.wait_for(self._ws.recv(), timeout)
        self.dispatch(raw)
        if self.peer_id is None:
            raise RuntimeError("Join was not acknowledged")
        return self.peer_id

    async def send(self, payload: Union[str, dict], recipient: Optional[PeerId] = None) -> None:
        """
        Send a payload through the relay.

        Args:
            payload: Opaque string, or a dict serialized as JSON
            recipient: Target peer (required for many-to-many and for a
                one-to-many host addressing a single client)
        """
        if self._ws is None:
            raise RuntimeError("Client not connected")
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        await self._ws.send(encode(SignalMessage(payload=payload, recipient=recipient)))

    async def leave(self) -> None:
        """Leave the session; the relay closes the connection afterwards."""
        if self._ws is None:
            raise RuntimeError("Client not connected")
        await self._ws.send(encode(LeaveMessage()))

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def run(self) -> None:
        """Dispatch frames to the sink until the connection closes."""
        if self._ws is None:
            raise RuntimeError("Client not connected")

        code, reason = None, ""
        try:
            async for raw in self._ws:
                self.dispatch(raw)
        except ConnectionClosed as e:
            if e.rcvd is not None:
                code, reason = e.rcvd.code, e.rcvd.reason
        else:
            close = getattr(self._ws, "close_code", None)
            code, reason = close, getattr(self._ws, "close_reason", "") or ""
        finally:
            self._ws = None

        self.sink.on_close(code, reason)

    def dispatch(self, raw: Union[str, bytes]) -> None:
        """Decode one relay frame and notify the sink."""
        message = decode_server_message(raw)

        if isinstance(message, JoinedMessage):
            self.peer_id = message.peer_id
            self.host = message.host
            self.sink.on_open(message)
        elif isinstance(message, RelayedSignal):
            self.sink.on_message(message.sender, message.payload)
        elif isinstance(message, PeerJoinedMessage):
            self.sink.on_peer_joined(message.peer_id)
        elif isinstance(message, PeerLeftMessage):
            self.sink.on_peer_left(message.peer_id)
        elif isinstance(message, HostLeftMessage):
            self.sink.on_host_left(message.peer_id)
        elif isinstance(message, ErrorMessage):
            logger.warning(f"Relay error {message.code}: {message.reason}")
            self.sink.on_error(message.code, message.reason)

