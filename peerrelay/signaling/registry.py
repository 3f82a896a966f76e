"""
Connection registry.

Tracks every live connection and the peer id assigned to it. Each peer gets a
``PeerChannel``: an outbound queue drained by its own writer task, so routing
only ever enqueues and one slow peer cannot stall delivery to the others.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterator, Optional, Protocol, Union

from ..config import OverflowPolicy
from ..exceptions import (
    CLOSE_SLOW_CONSUMER,
    PeerNotFound,
    PeerUnreachable,
    QueueOverflow,
)
from .types import PeerId

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Minimal connection interface the relay needs from a WebSocket."""

    async def receive(self) -> Optional[Union[str, bytes]]:
        """Next inbound frame, or None once the peer disconnected."""
        ...

    async def send_text(self, text: str) -> None:
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None:
        ...


@dataclass(frozen=True)
class _CloseRequest:
    code: int
    reason: str


class PeerChannel:
    """
    Outbound side of one peer connection.

    Frames are queued with ``enqueue`` (never suspends) and written by
    ``run``, which should be scheduled as a task for the connection's
    lifetime. A close request is queued behind pending frames.
    """

    def __init__(
        self,
        peer_id: PeerId,
        transport: Transport,
        max_queue: int = 256,
        overflow_policy: OverflowPolicy = OverflowPolicy.CLOSE,
    ):
        self.peer_id = peer_id
        self.transport = transport
        self.max_queue = max_queue
        self.overflow_policy = overflow_policy

        self._queue: Deque[Union[str, _CloseRequest]] = deque()
        self._wakeup = asyncio.Event()
        self._closing = False
        self._close_request: Optional[_CloseRequest] = None

        # Statistics
        self.frames_sent = 0
        self.frames_dropped = 0

    @property
    def closing(self) -> bool:
        return self._closing

    @property
    def pending(self) -> int:
        """Number of frames waiting to be written."""
        return sum(1 for item in self._queue if isinstance(item, str))

    @property
    def close_request(self) -> Optional[_CloseRequest]:
        return self._close_request

    def enqueue(self, frame: str) -> None:
        """
        Queue a frame for delivery.

        Raises:
            PeerUnreachable: If the channel is closing (or was just closed
                because of the overflow policy)
            QueueOverflow: If the queue is full under ``drop_newest``
        """
        if self._closing:
            raise PeerUnreachable(f"Peer {self.peer_id} is closing")

        if len(self._queue) >= self.max_queue:
            self._overflow()

        self._queue.append(frame)
        self._wakeup.set()

    def _overflow(self) -> None:
        if self.overflow_policy is OverflowPolicy.DROP_OLDEST:
            self._queue.popleft()
            self.frames_dropped += 1
            logger.debug(f"Peer {self.peer_id} queue full, dropped oldest frame")
            return

        self.frames_dropped += 1
        if self.overflow_policy is OverflowPolicy.DROP_NEWEST:
            logger.debug(f"Peer {self.peer_id} queue full, dropped newest frame")
            raise QueueOverflow(f"Outbound queue of peer {self.peer_id} is full")

        logger.warning(f"Peer {self.peer_id} is not keeping up, closing connection")
        self.frames_dropped += len(self._queue)
        self._queue.clear()
        self.close(CLOSE_SLOW_CONSUMER, "slow consumer")
        raise PeerUnreachable(f"Peer {self.peer_id} closed for falling behind")

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Request the connection be closed after pending frames are written."""
        if self._closing:
            return
        self._closing = True
        self._close_request = _CloseRequest(code, reason)
        self._queue.append(self._close_request)
        self._wakeup.set()

    async def run(self) -> None:
        """Write queued frames until a close request is reached or the transport fails."""
        while True:
            while not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()

            item = self._queue.popleft()
            try:
                if isinstance(item, _CloseRequest):
                    await self.transport.close(item.code, item.reason)
                    return
                await self.transport.send_text(item)
                self.frames_sent += 1
            except Exception as e:
                logger.debug(f"Write to peer {self.peer_id} failed: {e}")
                self._closing = True
                return


class ConnectionRegistry:
    """
    Registry of live peer connections.

    Example:
        registry = ConnectionRegistry()
        peer_id = registry.register(transport)
        registry.send(peer_id, frame)
        registry.unregister(peer_id)
    """

    def __init__(self, max_queue: int = 256,
                 overflow_policy: OverflowPolicy = OverflowPolicy.CLOSE):
        self.max_queue = max_queue
        self.overflow_policy = overflow_policy
        self._channels: Dict[PeerId, PeerChannel] = {}
        self._ids = itertools.count(1)

    def register(self, transport: Transport) -> PeerId:
        """
        Bind a new connection to a fresh peer id.

        Returns:
            Peer id, never issued before in this process
        """
        peer_id = next(self._ids)
        self._channels[peer_id] = PeerChannel(
            peer_id, transport, self.max_queue, self.overflow_policy
        )
        return peer_id

    def get(self, peer_id: PeerId) -> PeerChannel:
        """
        Raises:
            PeerNotFound: If the peer is not registered
        """
        try:
            return self._channels[peer_id]
        except KeyError:
            raise PeerNotFound(f"Peer {peer_id} is not connected") from None

    def send(self, peer_id: PeerId, frame: str) -> None:
        """
        Queue a frame for a peer. Never suspends.

        Raises:
            PeerNotFound: If the peer was unregistered
            PeerUnreachable: If the peer's connection is closing
            QueueOverflow: If the frame was dropped by the overflow policy
        """
        self.get(peer_id).enqueue(frame)

    def close(self, peer_id: PeerId, code: int = 1000, reason: str = "") -> None:
        """Ask a peer's connection to close once its queue drains."""
        channel = self._channels.get(peer_id)
        if channel is not None:
            channel.close(code, reason)

    def unregister(self, peer_id: PeerId) -> bool:
        """
        Sever a peer binding. Idempotent.

        Returns:
            True if the peer was registered
        """
        return self._channels.pop(peer_id, None) is not None

    def __contains__(self, peer_id: PeerId) -> bool:
        return peer_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def __iter__(self) -> Iterator[PeerId]:
        return iter(list(self._channels))
