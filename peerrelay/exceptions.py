"""Signaling relay exception hierarchy."""


# WebSocket close codes sent to peers (4000-4999 is reserved for applications)
CLOSE_NORMAL = 1000
CLOSE_PROTOCOL_ERROR = 4000
CLOSE_TOPOLOGY_MISMATCH = 4001
CLOSE_SESSION_FULL = 4002
CLOSE_SESSION_CLOSED = 4003
CLOSE_IDLE_TIMEOUT = 4004
CLOSE_SLOW_CONSUMER = 4005


class SignalingError(Exception):
    """Base exception for all relay operations."""

    close_code: int = CLOSE_PROTOCOL_ERROR

    def __init__(self, message: str, code: int | None = None, detail: str | None = None):
        self.message = message
        self.code = code if code is not None else self.close_code
        self.detail = detail
        super().__init__(message)


class ProtocolError(SignalingError):
    """Malformed frame or a message that is invalid in the peer's current state."""
    pass


class TopologyMismatch(ProtocolError):
    """Session already exists under a different topology endpoint."""

    close_code = CLOSE_TOPOLOGY_MISMATCH


class SessionFull(SignalingError):
    """Join refused because the session reached its capacity."""

    close_code = CLOSE_SESSION_FULL


class RoutingError(SignalingError):
    """Message could not be routed. Never fatal to the sender's connection."""
    pass


class UnknownRecipient(RoutingError):
    """Addressed recipient is not a member of the sender's session."""
    pass


class NoOtherPeer(RoutingError):
    """One-to-one session has no second member yet."""
    pass


class DeliveryError(SignalingError):
    """Frame could not be queued for a recipient."""
    pass


class PeerNotFound(DeliveryError):
    """Peer is not (or no longer) registered."""
    pass


class PeerUnreachable(DeliveryError):
    """Peer's connection is closing and accepts no more frames."""

    close_code = CLOSE_SLOW_CONSUMER


class QueueOverflow(DeliveryError):
    """Peer's outbound queue is full and the frame was discarded."""

    close_code = CLOSE_SLOW_CONSUMER
