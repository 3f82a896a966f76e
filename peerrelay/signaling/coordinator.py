"""
Session coordinator.

Owns the lifecycle of every connection (register, read loop, disconnect),
drives the topology policies on join and leave, and hands steady-state
traffic to the message router.

All session table mutations and routing decisions happen under a single
``asyncio.Lock``, so a peer never observes a membership snapshot that is stale
relative to a concurrent join or leave. Outbound frames are only ever queued
while the lock is held; the socket writes happen in per-peer writer tasks.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from ..config import RelayConfig
from ..exceptions import (
    CLOSE_IDLE_TIMEOUT,
    CLOSE_NORMAL,
    CLOSE_SESSION_CLOSED,
    DeliveryError,
    ProtocolError,
    RoutingError,
    SignalingError,
    TopologyMismatch,
)
from .protocol import (
    ErrorMessage,
    HostLeftMessage,
    JoinedMessage,
    JoinMessage,
    PeerJoinedMessage,
    PeerLeftMessage,
    SignalMessage,
    decode_client_message,
    encode,
)
from .registry import ConnectionRegistry, Transport
from .router import MessageRouter
from .sessions import SessionTable
from .topology import build_policies
from .types import (
    Envelope,
    HostLeft,
    JoinAccepted,
    JoinRejected,
    LeaveResult,
    MemberLeft,
    PeerId,
    PeerState,
    Role,
    SessionId,
    Topology,
)

logger = logging.getLogger(__name__)

# Control frame payload is 125 bytes, two of which hold the close code
MAX_CLOSE_REASON_BYTES = 123


def close_reason(message: str) -> str:
    """Cut a message to the close frame budget without splitting a UTF-8 sequence."""
    return message.encode("utf-8")[:MAX_CLOSE_REASON_BYTES].decode("utf-8", "ignore")


class SessionCoordinator:
    """
    Signaling session coordinator.

    Example:
        coordinator = SessionCoordinator(RelayConfig(idle_timeout=60))

        @app.websocket("/one-to-one")
        async def one_to_one(ws: WebSocket):
            await ws.accept()
            await coordinator.handle(WebSocketTransport(ws), Topology.ONE_TO_ONE)
    """

    def __init__(self, config: Optional[RelayConfig] = None):
        self.config = config or RelayConfig()
        self.registry = ConnectionRegistry(
            max_queue=self.config.outbound_queue_size,
            overflow_policy=self.config.overflow_policy,
        )
        self.sessions = SessionTable()
        self.router = MessageRouter(self.registry)
        self.policies = build_policies(self.config)

        self._lock = asyncio.Lock()
        self._states: Dict[PeerId, PeerState] = {}

        # Statistics
        self.connections_total = 0
        self.joins_accepted = 0
        self.joins_rejected = 0
        self.routing_errors = 0
        self.protocol_errors = 0
        self.idle_disconnects = 0

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self, transport: Transport) -> PeerId:
        """Register a freshly accepted connection. The peer starts CONNECTING."""
        peer_id = self.registry.register(transport)
        self._states[peer_id] = PeerState.CONNECTING
        self.connections_total += 1
        logger.info(f"Peer {peer_id} connected")
        return peer_id

    def state(self, peer_id: PeerId) -> PeerState:
        return self._states.get(peer_id, PeerState.CLOSED)

    async def handle(self, transport: Transport, topology: Topology) -> PeerId:
        """
        Serve one connection until it closes.

        Runs the read loop next to the peer's writer task. Whichever finishes
        first ends the connection; membership is then removed before the peer
        id is released.

        Args:
            transport: Accepted WebSocket connection
            topology: Topology of the endpoint that accepted it

        Returns:
            Peer id the connection was served under
        """
        peer_id = self.connect(transport)
        channel = self.registry.get(peer_id)

        writer = asyncio.create_task(channel.run(), name=f"peerrelay-writer-{peer_id}")
        reader = asyncio.create_task(
            self._read_loop(peer_id, transport, topology), name=f"peerrelay-reader-{peer_id}"
        )

        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                if not reader.cancelled() and reader.exception() is not None:
                    logger.warning(f"Connection error (peer {peer_id}): {reader.exception()!r}")
                if channel.closing and not writer.done():
                    # Deliver what was queued ahead of the close frame
                    await asyncio.wait({writer}, timeout=self.config.close_timeout)
        finally:
            result = await self.leave(peer_id)
            self.registry.unregister(peer_id)
            self._states.pop(peer_id, None)

            for task in (reader, writer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)
            logger.info(f"Peer {peer_id} disconnected ({type(result).__name__ if result else 'not joined'})")

        return peer_id

    async def _read_loop(self, peer_id: PeerId, transport: Transport, topology: Topology) -> None:
        while True:
            try:
                raw = await self._receive(transport)
            except asyncio.TimeoutError:
                self.idle_disconnects += 1
                logger.info(f"Peer {peer_id} idle for {self.config.idle_timeout}s, disconnecting")
                self.registry.close(peer_id, CLOSE_IDLE_TIMEOUT, "idle timeout")
                return

            if raw is None:
                return

            try:
                await self.handle_frame(peer_id, topology, raw)
            except SignalingError as e:
                self._reject(peer_id, e)
                return

            if self.state(peer_id) is PeerState.CLOSED:
                return

    async def _receive(self, transport: Transport) -> Optional[Union[str, bytes]]:
        if self.config.idle_timeout_enabled:
            return await asyncio.wait_for(transport.receive(), self.config.idle_timeout)
        return await transport.receive()

    async def handle_frame(self, peer_id: PeerId, topology: Topology,
                           raw: Union[str, bytes]) -> None:
        """
        Process one inbound frame according to the peer's state.

        Routing errors are logged and dropped; anything else that goes wrong
        is raised and ends the connection.

        Raises:
            ProtocolError: Malformed frame or message invalid in this state
            SessionFull: Join refused by the topology policy
        """
        state = self.state(peer_id)
        if state is PeerState.CLOSED:
            return

        message = decode_client_message(raw, self.config.max_frame_bytes)

        if isinstance(message, JoinMessage):
            if state is not PeerState.CONNECTING:
                raise ProtocolError(f"Peer {peer_id} already joined a session")
            await self.join(peer_id, topology, message.session_id)

        elif isinstance(message, SignalMessage):
            if state is not PeerState.JOINED:
                raise ProtocolError("First message must be a join")
            try:
                await self.relay(peer_id, message.payload, message.recipient)
            except RoutingError as e:
                self.routing_errors += 1
                logger.debug(f"Dropped message from peer {peer_id}: {e}")

        else:
            if state is not PeerState.JOINED:
                raise ProtocolError(f"Peer {peer_id} is not in a session")
            await self.leave(peer_id)
            self.registry.close(peer_id, CLOSE_NORMAL, "left session")

    def _reject(self, peer_id: PeerId, error: SignalingError) -> None:
        if isinstance(error, ProtocolError):
            self.protocol_errors += 1
        logger.warning(f"Closing peer {peer_id}: {error.message}"
                       + (f" ({error.detail})" if error.detail else ""))

        self._send(peer_id, ErrorMessage(code=error.code, reason=error.message))
        self.registry.close(peer_id, error.code, close_reason(error.message))

    # =========================================================================
    # Session operations
    # =========================================================================

    async def join(self, peer_id: PeerId, topology: Topology,
                   session_id: SessionId) -> JoinAccepted:
        """
        Join a peer to a session, creating the session on first join.

        The joiner receives a ``joined`` frame listing the peers it should
        negotiate with; the members chosen by the policy receive
        ``peer_joined``.

        Raises:
            ProtocolError: Session id too long or peer not in CONNECTING state
            TopologyMismatch: Session exists under another topology
            SessionFull: Policy refused the join
        """
        if len(session_id) > self.config.max_session_id_length:
            raise ProtocolError(
                f"Session id longer than {self.config.max_session_id_length} characters"
            )

        async with self._lock:
            if self.state(peer_id) is not PeerState.CONNECTING:
                raise ProtocolError(f"Peer {peer_id} cannot join from state {self.state(peer_id).value}")

            session = self.sessions.get(session_id)
            if session is None:
                session = self.sessions.create(session_id, topology)
            elif session.topology is not topology:
                self.joins_rejected += 1
                raise TopologyMismatch(
                    f"Session {session_id!r} uses the {session.topology.value} endpoint"
                )

            result = self.policies[topology].on_join(session, peer_id)
            if isinstance(result, JoinRejected):
                self.joins_rejected += 1
                raise result.error

            if result.role is Role.HOST:
                session.host = peer_id
            self.sessions.add_member(session, peer_id)
            self._states[peer_id] = PeerState.JOINED
            self.joins_accepted += 1

            self._send(peer_id, JoinedMessage(
                session_id=session_id,
                peer_id=peer_id,
                topology=topology.value,
                role=result.role.value if result.role else None,
                host=result.host,
                peers=list(result.existing),
            ))
            for other in result.notify:
                self._send(other, PeerJoinedMessage(session_id=session_id, peer_id=peer_id))

        logger.info(f"Peer {peer_id} joined {topology.value} session {session_id!r}"
                    + (f" as {result.role.value}" if result.role else ""))
        return result

    async def relay(self, peer_id: PeerId, payload: str,
                    recipient: Optional[PeerId] = None) -> List[PeerId]:
        """
        Relay a payload from a joined peer.

        Returns:
            Peers the payload was queued for

        Raises:
            ProtocolError: If the peer is not in a session
            RoutingError: If no recipient could be resolved
        """
        async with self._lock:
            session = self.sessions.session_of(peer_id)
            if session is None:
                raise ProtocolError(f"Peer {peer_id} is not in a session")
            return self.router.dispatch(session, Envelope(peer_id, payload, recipient))

    async def leave(self, peer_id: PeerId) -> Optional[LeaveResult]:
        """
        Remove a peer from its session. Idempotent.

        A departing one-to-many host tears the whole session down: clients get
        ``host_left`` and their connections are closed. Otherwise the members
        chosen by the policy get ``peer_left``.

        Returns:
            What the departure did, or None if the peer was in no session
        """
        async with self._lock:
            session = self.sessions.session_of(peer_id)
            if session is None:
                return None

            result = self.policies[session.topology].on_leave(session, peer_id)
            self._states[peer_id] = PeerState.CLOSED

            if isinstance(result, HostLeft):
                self.sessions.discard(session.session_id)
                notice = HostLeftMessage(session_id=session.session_id, peer_id=peer_id)
                for client in result.affected:
                    self._send(client, notice)
                    if client in self._states:
                        self._states[client] = PeerState.CLOSED
                    self.registry.close(client, CLOSE_SESSION_CLOSED, "host left")
            else:
                self.sessions.remove_member(peer_id)
                if isinstance(result, MemberLeft):
                    notice = PeerLeftMessage(session_id=session.session_id, peer_id=peer_id)
                    for other in result.affected:
                        self._send(other, notice)

        logger.info(f"Peer {peer_id} left {session.topology.value} session "
                    f"{session.session_id!r}: {type(result).__name__}")
        return result

    def _send(self, peer_id: PeerId, message: BaseModel) -> None:
        try:
            self.registry.send(peer_id, encode(message))
        except DeliveryError as e:
            logger.debug(f"Could not notify peer {peer_id}: {e}")

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_stats(self) -> dict:
        """Get relay statistics."""
        return {
            "peers": len(self.registry),
            "joined_peers": self.sessions.peer_count,
            "sessions": len(self.sessions),
            "sessions_by_topology": {
                topology.value: self.sessions.count(topology) for topology in Topology
            },
            "connections_total": self.connections_total,
            "joins_accepted": self.joins_accepted,
            "joins_rejected": self.joins_rejected,
            "messages_relayed": self.router.messages_routed,
            "frames_delivered": self.router.frames_delivered,
            "frames_dropped": self.router.frames_dropped,
            "routing_errors": self.routing_errors,
            "protocol_errors": self.protocol_errors,
            "idle_disconnects": self.idle_disconnects,
        }
