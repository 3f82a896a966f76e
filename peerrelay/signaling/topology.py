"""
Topology policies.

Pure decision logic: given the current state of a session, decide whether a
peer may join, which role it gets and who has to be told about it, and what a
departure means for the rest of the session. Policies never mutate sessions
and never perform I/O.
"""

from typing import Dict, Optional

from ..config import RelayConfig
from ..exceptions import SessionFull
from .types import (
    HostLeft,
    JoinAccepted,
    JoinRejected,
    JoinResult,
    LeaveResult,
    MemberLeft,
    PeerId,
    Role,
    Session,
    SessionDestroyed,
    Topology,
)


class TopologyPolicy:
    """
    Base class for topology policies.

    Subclasses set ``topology`` and implement ``accept`` and ``affected_by_leave``.
    """

    topology: Topology

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity

    def on_join(self, session: Session, peer_id: PeerId) -> JoinResult:
        """
        Decide on a join request.

        Args:
            session: Target session (empty if it does not exist yet)
            peer_id: Joining peer

        Returns:
            JoinAccepted or JoinRejected
        """
        if self.capacity is not None and len(session) >= self.capacity:
            return JoinRejected(SessionFull(
                f"Session {session.session_id!r} is full",
                detail=f"capacity {self.capacity}",
            ))
        return self.accept(session, peer_id)

    def accept(self, session: Session, peer_id: PeerId) -> JoinAccepted:
        raise NotImplementedError

    def on_leave(self, session: Session, peer_id: PeerId) -> LeaveResult:
        """
        Describe the effect of ``peer_id`` leaving ``session``.

        The session is inspected as it is before the departure.
        """
        if not session.others(peer_id):
            return SessionDestroyed(session.session_id)
        return MemberLeft(
            session.session_id, peer_id, tuple(self.affected_by_leave(session, peer_id))
        )

    def affected_by_leave(self, session: Session, peer_id: PeerId):
        return session.others(peer_id)


class OneToOnePolicy(TopologyPolicy):
    """Exactly two peers, no roles. The earlier peer makes the offer."""

    topology = Topology.ONE_TO_ONE

    def __init__(self):
        super().__init__(capacity=2)

    def accept(self, session: Session, peer_id: PeerId) -> JoinAccepted:
        others = tuple(session.members)
        return JoinAccepted(existing=others, notify=others)


class OneToManyPolicy(TopologyPolicy):
    """
    First joiner hosts; everyone after is a client of that host.

    Clients only ever learn about the host, and only the host hears about
    clients coming and going. The host is never re-elected.
    """

    topology = Topology.ONE_TO_MANY

    def accept(self, session: Session, peer_id: PeerId) -> JoinAccepted:
        if not session.members:
            return JoinAccepted(role=Role.HOST, host=peer_id)

        host = session.host
        return JoinAccepted(role=Role.CLIENT, host=host, existing=(host,), notify=(host,))

    def on_leave(self, session: Session, peer_id: PeerId) -> LeaveResult:
        if peer_id == session.host and session.others(peer_id):
            return HostLeft(session.session_id, peer_id, tuple(session.clients))
        return super().on_leave(session, peer_id)

    def affected_by_leave(self, session: Session, peer_id: PeerId):
        return [session.host]


class ManyToManyPolicy(TopologyPolicy):
    """Full mesh: every member learns about every other member."""

    topology = Topology.MANY_TO_MANY

    def accept(self, session: Session, peer_id: PeerId) -> JoinAccepted:
        others = tuple(session.members)
        return JoinAccepted(existing=others, notify=others)


def policy_for(topology: Topology, config: Optional[RelayConfig] = None) -> TopologyPolicy:
    """Create the policy for a topology, applying the configured soft limits."""
    config = config or RelayConfig()
    if topology is Topology.ONE_TO_ONE:
        return OneToOnePolicy()
    if topology is Topology.ONE_TO_MANY:
        return OneToManyPolicy(capacity=config.max_session_members)
    return ManyToManyPolicy(capacity=config.max_session_members)


def build_policies(config: Optional[RelayConfig] = None) -> Dict[Topology, TopologyPolicy]:
    return {topology: policy_for(topology, config) for topology in Topology}
