"""
peerrelay - WebSocket signaling relay for WebRTC peers

Peers connect to a topology endpoint, join a session by id and exchange
opaque negotiation messages (SDP offers/answers, ICE candidates) through the
relay until their direct peer-to-peer channel is up.

Features:
- One-to-one, one-to-many and many-to-many session topologies
- Payload-agnostic routing (payloads are relayed byte-identical)
- Per-peer outbound queues with a configurable overflow policy
- Idle disconnect and bounded session ids, frames and session sizes
- Python signaling client with an event-sink interface
"""

__version__ = "0.3.0"

from .config import OverflowPolicy, RelayConfig, parse_bind
from .exceptions import (
    SignalingError,
    ProtocolError,
    TopologyMismatch,
    SessionFull,
    RoutingError,
    UnknownRecipient,
    NoOtherPeer,
    DeliveryError,
    PeerNotFound,
    PeerUnreachable,
    QueueOverflow,
)
from .signaling import (
    SessionCoordinator,
    ConnectionRegistry,
    MessageRouter,
    SessionTable,
    Topology,
    Role,
    Envelope,
)
from .client import SignalingClient, EventSink

__all__ = [
    '__version__',

    # Config
    'RelayConfig',
    'OverflowPolicy',
    'parse_bind',

    # Core
    'SessionCoordinator',
    'ConnectionRegistry',
    'MessageRouter',
    'SessionTable',
    'Topology',
    'Role',
    'Envelope',

    # Client
    'SignalingClient',
    'EventSink',

    # Errors
    'SignalingError',
    'ProtocolError',
    'TopologyMismatch',
    'SessionFull',
    'RoutingError',
    'UnknownRecipient',
    'NoOtherPeer',
    'DeliveryError',
    'PeerNotFound',
    'PeerUnreachable',
    'QueueOverflow',
]
