"""
WebRTC signaling core

Session coordination and message relay between WebSocket-connected peers.
"""

from .coordinator import SessionCoordinator
from .registry import ConnectionRegistry, PeerChannel
from .router import MessageRouter
from .sessions import SessionTable
from .topology import (
    TopologyPolicy,
    OneToOnePolicy,
    OneToManyPolicy,
    ManyToManyPolicy,
    policy_for,
)
from .types import (
    PeerId,
    SessionId,
    Topology,
    Role,
    PeerState,
    Session,
    Envelope,
    JoinAccepted,
    JoinRejected,
    SessionDestroyed,
    HostLeft,
    MemberLeft,
)

__all__ = [
    'SessionCoordinator',
    'ConnectionRegistry',
    'PeerChannel',
    'MessageRouter',
    'SessionTable',
    'TopologyPolicy',
    'OneToOnePolicy',
    'OneToManyPolicy',
    'ManyToManyPolicy',
    'policy_for',
    'PeerId',
    'SessionId',
    'Topology',
    'Role',
    'PeerState',
    'Session',
    'Envelope',
    'JoinAccepted',
    'JoinRejected',
    'SessionDestroyed',
    'HostLeft',
    'MemberLeft',
]
