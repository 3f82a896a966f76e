"""
Message router.

Resolves the recipients of a signaling envelope from the session state and
topology, then hands one re-addressed frame per recipient to the connection
registry. Payloads are forwarded untouched.
"""

import logging
from typing import Callable, Dict, List

from ..exceptions import DeliveryError, NoOtherPeer, UnknownRecipient
from .protocol import RelayedSignal, encode
from .registry import ConnectionRegistry
from .types import Envelope, PeerId, Session, Topology

logger = logging.getLogger(__name__)


def route_one_to_one(session: Session, envelope: Envelope) -> List[PeerId]:
    # The recipient field is irrelevant: there is only ever one counterpart
    others = session.others(envelope.sender)
    if not others:
        raise NoOtherPeer(f"Session {session.session_id!r} has no second peer yet")
    return others


def route_one_to_many(session: Session, envelope: Envelope) -> List[PeerId]:
    if envelope.sender != session.host:
        # Clients can only talk to the host
        return [session.host]

    if envelope.recipient is None:
        return session.clients

    if envelope.recipient == session.host or envelope.recipient not in session:
        raise UnknownRecipient(
            f"Peer {envelope.recipient} is not a client of session {session.session_id!r}"
        )
    return [envelope.recipient]


def route_many_to_many(session: Session, envelope: Envelope) -> List[PeerId]:
    recipient = envelope.recipient
    if recipient is None or recipient == envelope.sender or recipient not in session:
        raise UnknownRecipient(
            f"Peer {recipient} is not a member of session {session.session_id!r}"
        )
    return [recipient]


ROUTES: Dict[Topology, Callable[[Session, Envelope], List[PeerId]]] = {
    Topology.ONE_TO_ONE: route_one_to_one,
    Topology.ONE_TO_MANY: route_one_to_many,
    Topology.MANY_TO_MANY: route_many_to_many,
}


class MessageRouter:
    """
    Routes envelopes between members of a session.

    Example:
        router = MessageRouter(registry)
        delivered = router.dispatch(session, Envelope(sender=1, payload=sdp))
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

        # Statistics
        self.messages_routed = 0
        self.frames_delivered = 0
        self.frames_dropped = 0

    def route(self, session: Session, envelope: Envelope) -> List[PeerId]:
        """
        Resolve recipients without sending anything.

        Raises:
            NoOtherPeer: One-to-one session with a single member
            UnknownRecipient: Addressed peer is not in the session
        """
        return ROUTES[session.topology](session, envelope)

    def dispatch(self, session: Session, envelope: Envelope) -> List[PeerId]:
        """
        Route an envelope and queue it for every recipient.

        Delivery failures are logged and counted, never raised.

        Returns:
            Recipients the frame was queued for

        Raises:
            RoutingError: If no recipient could be resolved
        """
        recipients = self.route(session, envelope)
        # Only echo the recipient when it was actually used for addressing
        directed = envelope.recipient is not None and recipients == [envelope.recipient]
        frame = encode(RelayedSignal(
            session_id=session.session_id,
            sender=envelope.sender,
            recipient=envelope.recipient if directed else None,
            payload=envelope.payload,
        ))

        self.messages_routed += 1
        delivered = []
        for peer_id in recipients:
            try:
                self.registry.send(peer_id, frame)
            except DeliveryError as e:
                self.frames_dropped += 1
                logger.debug(f"Dropped frame from {envelope.sender} to {peer_id}: {e}")
                continue
            delivered.append(peer_id)

        self.frames_delivered += len(delivered)
        return delivered
