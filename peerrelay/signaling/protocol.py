"""
Wire protocol for the signaling relay.

Every frame is a UTF-8 JSON object with a ``type`` discriminator. Text and
binary frames are both accepted; the payload of ``signal`` messages is an
opaque string that the relay never inspects.

Client to server:
    {"type": "join", "session_id": "..."}
    {"type": "signal", "recipient": 7, "payload": "..."}
    {"type": "leave"}

Server to client:
    {"type": "joined", "session_id": ..., "peer_id": ..., "topology": ...,
     "role": ..., "host": ..., "peers": [...]}
    {"type": "peer_joined", "session_id": ..., "peer_id": ...}
    {"type": "peer_left", "session_id": ..., "peer_id": ...}
    {"type": "host_left", "session_id": ..., "peer_id": ...}
    {"type": "signal", "session_id": ..., "sender": ..., "recipient": ..., "payload": ...}
    {"type": "error", "code": ..., "reason": ...}
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..exceptions import ProtocolError


# =============================================================================
# Client -> server
# =============================================================================

class JoinMessage(BaseModel):
    """First frame of every connection."""
    type: Literal["join"] = "join"
    session_id: str = Field(min_length=1)


class SignalMessage(BaseModel):
    """Negotiation payload to relay (SDP offer/answer, ICE candidate, ...)."""
    type: Literal["signal"] = "signal"
    payload: str
    recipient: Optional[int] = Field(None, ge=0)


class LeaveMessage(BaseModel):
    """Explicit departure from the session."""
    type: Literal["leave"] = "leave"


ClientMessage = Annotated[
    Union[JoinMessage, SignalMessage, LeaveMessage],
    Field(discriminator="type"),
]


# =============================================================================
# Server -> client
# =============================================================================

class JoinedMessage(BaseModel):
    """Sent to a peer once its join is accepted."""
    type: Literal["joined"] = "joined"
    session_id: str
    peer_id: int
    topology: str
    role: Optional[str] = None
    host: Optional[int] = None
    peers: List[int] = Field(default_factory=list)


class PeerJoinedMessage(BaseModel):
    type: Literal["peer_joined"] = "peer_joined"
    session_id: str
    peer_id: int


class PeerLeftMessage(BaseModel):
    type: Literal["peer_left"] = "peer_left"
    session_id: str
    peer_id: int


class HostLeftMessage(BaseModel):
    """Sent to one-to-many clients when the host goes away."""
    type: Literal["host_left"] = "host_left"
    session_id: str
    peer_id: int


class RelayedSignal(BaseModel):
    """Signal forwarded to a recipient, stamped with the sender's id."""
    type: Literal["signal"] = "signal"
    session_id: str
    sender: int
    payload: str
    recipient: Optional[int] = None


class ErrorMessage(BaseModel):
    """Sent right before the server closes a connection."""
    type: Literal["error"] = "error"
    code: int
    reason: str


ServerMessage = Annotated[
    Union[
        JoinedMessage,
        PeerJoinedMessage,
        PeerLeftMessage,
        HostLeftMessage,
        RelayedSignal,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]


_client_adapter: TypeAdapter = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter = TypeAdapter(ServerMessage)


def _as_text(raw: Union[str, bytes]) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError("Binary frame is not valid UTF-8", detail=str(e)) from None


def decode_client_message(raw: Union[str, bytes], max_bytes: Optional[int] = None):
    """
    Decode one inbound frame.

    Args:
        raw: Text or binary frame
        max_bytes: Maximum accepted frame size (no limit if None)

    Returns:
        JoinMessage, SignalMessage or LeaveMessage

    Raises:
        ProtocolError: If the frame is too large, not JSON or not a known message
    """
    size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
    if max_bytes is not None and size > max_bytes:
        raise ProtocolError(f"Frame of {size} bytes exceeds limit of {max_bytes}")

    try:
        return _client_adapter.validate_json(_as_text(raw))
    except ValidationError as e:
        raise ProtocolError("Malformed message", detail=str(e)) from None


def decode_server_message(raw: Union[str, bytes]):
    """Decode one frame received from the relay (used by the client)."""
    try:
        return _server_adapter.validate_json(_as_text(raw))
    except ValidationError as e:
        raise ProtocolError("Malformed server message", detail=str(e)) from None


def encode(message: BaseModel) -> str:
    """Serialize a protocol message to a text frame, omitting unset optionals."""
    return message.model_dump_json(exclude_none=True)
