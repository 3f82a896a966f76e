"""
Session table.

Maps session ids to their ``Session`` and every joined peer to the session it
belongs to. The table does no locking of its own: callers serialize access
(the coordinator holds one lock around every mutation and routing decision).
"""

from typing import Dict, Iterator, List, Optional

from .types import PeerId, Session, SessionId, Topology


class SessionTable:
    """
    In-memory session table.

    Invariants:
        - a session is stored iff it has at least one member
        - a peer belongs to at most one session
    """

    def __init__(self):
        self._sessions: Dict[SessionId, Session] = {}
        self._membership: Dict[PeerId, SessionId] = {}

    def get(self, session_id: SessionId) -> Optional[Session]:
        return self._sessions.get(session_id)

    def session_of(self, peer_id: PeerId) -> Optional[Session]:
        """Session a peer currently belongs to, if any."""
        session_id = self._membership.get(peer_id)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def create(self, session_id: SessionId, topology: Topology) -> Session:
        """
        Build a new, empty session. It is stored by its first ``add_member``.

        Raises:
            ValueError: If a session with this id already exists
        """
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id!r} already exists")
        return Session(session_id, topology)

    def add_member(self, session: Session, peer_id: PeerId) -> None:
        """
        Add a peer to a session, storing the session if it is new.

        Raises:
            ValueError: If the peer already belongs to a session
        """
        if peer_id in self._membership:
            raise ValueError(f"Peer {peer_id} already belongs to a session")

        stored = self._sessions.get(session.session_id)
        if stored is not None and stored is not session:
            raise ValueError(f"Session {session.session_id!r} is already stored")

        session.members.append(peer_id)
        self._sessions[session.session_id] = session
        self._membership[peer_id] = session.session_id

    def remove_member(self, peer_id: PeerId) -> Optional[Session]:
        """
        Remove a peer from its session, deleting the session when it empties.

        Returns:
            The session the peer left, or None if it was not a member
        """
        session = self.session_of(peer_id)
        if session is None:
            return None

        del self._membership[peer_id]
        session.members.remove(peer_id)
        if not session.members:
            del self._sessions[session.session_id]
        return session

    def discard(self, session_id: SessionId) -> List[PeerId]:
        """
        Delete a session and detach all of its members.

        Returns:
            Peers that were still members
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return []

        members = list(session.members)
        for peer_id in members:
            self._membership.pop(peer_id, None)
        session.members.clear()
        return members

    def count(self, topology: Optional[Topology] = None) -> int:
        """Number of sessions, optionally for one topology."""
        if topology is None:
            return len(self._sessions)
        return sum(1 for s in self._sessions.values() if s.topology is topology)

    @property
    def peer_count(self) -> int:
        return len(self._membership)

    def __contains__(self, session_id: SessionId) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
