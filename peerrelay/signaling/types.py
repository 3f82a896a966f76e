"""
Signaling type definitions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from ..exceptions import SignalingError


# Runtime-assigned connection identifier, unique for the process lifetime
PeerId = int

# Opaque session name shared out-of-band between peers
SessionId = str


class Topology(Enum):
    """Session topology. The value is also the endpoint path suffix."""
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"

    @property
    def path(self) -> str:
        return f"/{self.value}"


class Role(Enum):
    """Peer role inside a one-to-many session."""
    HOST = "host"
    CLIENT = "client"


class PeerState(Enum):
    """Per-connection lifecycle state."""
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSED = "closed"


@dataclass
class Session:
    """
    Group of peers relaying signaling messages to each other.

    Members are kept in arrival order; for one-to-many sessions the first
    member is the host for the whole lifetime of the session.
    """
    session_id: SessionId
    topology: Topology
    members: List[PeerId] = field(default_factory=list)
    host: Optional[PeerId] = None

    def __len__(self) -> int:
        return len(self.members)

    def __contains__(self, peer_id: PeerId) -> bool:
        return peer_id in self.members

    def others(self, peer_id: PeerId) -> List[PeerId]:
        """Members other than ``peer_id``, in arrival order."""
        return [p for p in self.members if p != peer_id]

    @property
    def clients(self) -> List[PeerId]:
        """Non-host members (every member when there is no host)."""
        return self.others(self.host) if self.host is not None else list(self.members)


@dataclass(frozen=True)
class Envelope:
    """Routing-addressed unit of signaling traffic."""
    sender: PeerId
    payload: str
    recipient: Optional[PeerId] = None


# =============================================================================
# Topology policy decisions
# =============================================================================

@dataclass(frozen=True)
class JoinAccepted:
    """
    Join decision for an accepted peer.

    Attributes:
        role: Role assigned to the joiner (one-to-many only)
        host: Host peer id of the session (one-to-many; the joiner itself when it hosts)
        existing: Members the joiner is told about
        notify: Members that are told about the joiner
    """
    role: Optional[Role] = None
    host: Optional[PeerId] = None
    existing: Tuple[PeerId, ...] = ()
    notify: Tuple[PeerId, ...] = ()


@dataclass(frozen=True)
class JoinRejected:
    """Join decision for a refused peer."""
    error: SignalingError


JoinResult = Union[JoinAccepted, JoinRejected]


@dataclass(frozen=True)
class SessionDestroyed:
    """Last member left; the session is gone."""
    session_id: SessionId


@dataclass(frozen=True)
class HostLeft:
    """One-to-many host left; the session is torn down and clients detached."""
    session_id: SessionId
    host: PeerId
    affected: Tuple[PeerId, ...]


@dataclass(frozen=True)
class MemberLeft:
    """A member left a session that is still alive."""
    session_id: SessionId
    peer_id: PeerId
    affected: Tuple[PeerId, ...]


LeaveResult = Union[SessionDestroyed, HostLeft, MemberLeft]
