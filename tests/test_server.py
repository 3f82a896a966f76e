#!/usr/bin/env python3
"""
Relay server end-to-end tests.

Exercises the FastAPI application through Starlette's TestClient, with real
WebSocket framing between the test peers and the coordinator.

Tests cover:
- /health and /stats
- One-to-one offer/answer exchange
- One-to-many broadcast and host departure
- Many-to-many directed relay
- Join rejections and their close codes
- WebSocketTransport adapter
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from peerrelay.config import RelayConfig
from peerrelay.exceptions import (
    CLOSE_PROTOCOL_ERROR,
    CLOSE_SESSION_CLOSED,
    CLOSE_SESSION_FULL,
    CLOSE_TOPOLOGY_MISMATCH,
)
from peerrelay.http.server import create_app
from peerrelay.http.websocket import WebSocketTransport

from conftest import random_session_id


SAMPLE_SDP_OFFER = """v=0
o=- 123456789 2 IN IP4 127.0.0.1
s=-
t=0 0
a=group:BUNDLE 0
m=audio 9 UDP/TLS/RTP/SAVPF 111
c=IN IP4 0.0.0.0
a=mid:0
a=sendrecv
a=rtpmap:111 opus/48000/2
"""

SAMPLE_ICE_CANDIDATE = "candidate:1 1 UDP 2122252543 192.168.1.100 54400 typ host"


@pytest.fixture
def client():
    app = create_app(RelayConfig(idle_timeout=None))
    with TestClient(app) as test_client:
        yield test_client


def join(ws, session_id):
    ws.send_json({"type": "join", "session_id": session_id})
    joined = ws.receive_json()
    assert joined["type"] == "joined", joined
    return joined


def expect(ws, frame_type):
    frame = ws.receive_json()
    assert frame["type"] == frame_type, frame
    return frame


def expect_close(ws):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        while True:
            ws.receive_json()
    return exc_info.value.code


# =============================================================================
# HTTP endpoints
# =============================================================================

class TestHttpEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.text == "OK"

    def test_stats_empty(self, client):
        stats = client.get("/stats").json()

        assert stats["peers"] == 0
        assert stats["sessions"] == 0
        assert set(stats["sessions_by_topology"]) == {"one-to-one", "one-to-many", "many-to-many"}

    def test_stats_count_sessions(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/many-to-many") as ws:
            join(ws, session_id)
            stats = client.get("/stats").json()

        assert stats["sessions"] == 1
        assert stats["joined_peers"] == 1
        assert stats["sessions_by_topology"]["many-to-many"] == 1

    def test_coordinator_on_app_state(self):
        config = RelayConfig(max_session_members=3)
        app = create_app(config)

        assert app.state.config is config
        assert app.state.coordinator.config is config


# =============================================================================
# One-to-one
# =============================================================================

class TestOneToOne:

    def test_offer_answer_exchange(self, client):
        """Test a full offer/answer/candidate exchange between two peers."""
        session_id = random_session_id()
        with client.websocket_connect("/one-to-one") as a:
            joined_a = join(a, session_id)
            with client.websocket_connect("/one-to-one") as b:
                joined_b = join(b, session_id)
                assert joined_b["peers"] == [joined_a["peer_id"]]

                # The peer told about the newcomer makes the offer
                notice = expect(a, "peer_joined")
                assert notice["peer_id"] == joined_b["peer_id"]

                offer = json.dumps({"type": "offer", "sdp": SAMPLE_SDP_OFFER})
                a.send_json({"type": "signal", "payload": offer})
                relayed = expect(b, "signal")
                assert relayed["sender"] == joined_a["peer_id"]
                assert relayed["payload"] == offer

                answer = json.dumps({"type": "answer", "sdp": "v=0\r\n"})
                b.send_json({"type": "signal", "payload": answer})
                assert expect(a, "signal")["payload"] == answer

                candidate = json.dumps({"candidate": SAMPLE_ICE_CANDIDATE, "sdpMLineIndex": 0})
                a.send_json({"type": "signal", "payload": candidate})
                assert expect(b, "signal")["payload"] == candidate

            notice = expect(a, "peer_left")
            assert notice["peer_id"] == joined_b["peer_id"]

    def test_third_peer_rejected(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/one-to-one") as a, \
                client.websocket_connect("/one-to-one") as b, \
                client.websocket_connect("/one-to-one") as c:
            join(a, session_id)
            join(b, session_id)

            c.send_json({"type": "join", "session_id": session_id})
            error = expect(c, "error")

            assert error["code"] == CLOSE_SESSION_FULL
            assert expect_close(c) == CLOSE_SESSION_FULL

    def test_binary_join(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/one-to-one") as ws:
            ws.send_bytes(json.dumps({"type": "join", "session_id": session_id}).encode())

            assert expect(ws, "joined")["session_id"] == session_id


# =============================================================================
# One-to-many
# =============================================================================

class TestOneToMany:

    def test_broadcast_and_reply(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/one-to-many") as host, \
                client.websocket_connect("/one-to-many") as x, \
                client.websocket_connect("/one-to-many") as y:
            host_id = join(host, session_id)["peer_id"]
            joined_x = join(x, session_id)
            joined_y = join(y, session_id)
            expect(host, "peer_joined")
            expect(host, "peer_joined")

            assert joined_x["role"] == "client"
            assert joined_y["host"] == host_id

            host.send_json({"type": "signal", "payload": "stream offer"})
            assert expect(x, "signal")["payload"] == "stream offer"
            assert expect(y, "signal")["payload"] == "stream offer"

            y.send_json({"type": "signal", "payload": "answer from y"})
            relayed = expect(host, "signal")
            assert relayed["sender"] == joined_y["peer_id"]

    def test_host_left(self, client):
        """Test clients are detached with 4003 when the host goes away."""
        session_id = random_session_id()
        with client.websocket_connect("/one-to-many") as x:
            with client.websocket_connect("/one-to-many") as host:
                host_id = join(host, session_id)["peer_id"]
                join(x, session_id)
                expect(host, "peer_joined")

            notice = expect(x, "host_left")
            assert notice["peer_id"] == host_id
            assert expect_close(x) == CLOSE_SESSION_CLOSED

        assert client.get("/stats").json()["sessions"] == 0


# =============================================================================
# Many-to-many
# =============================================================================

class TestManyToMany:

    def test_directed_relay(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/many-to-many") as a, \
                client.websocket_connect("/many-to-many") as b, \
                client.websocket_connect("/many-to-many") as c:
            id_a = join(a, session_id)["peer_id"]
            id_b = join(b, session_id)["peer_id"]
            joined_c = join(c, session_id)
            assert joined_c["peers"] == [id_a, id_b]

            c.send_json({"type": "signal", "recipient": id_a, "payload": "offer to a"})

            # a first hears about b and c joining, then the offer
            expect(a, "peer_joined")
            expect(a, "peer_joined")
            relayed = expect(a, "signal")
            assert relayed["sender"] == joined_c["peer_id"]
            assert relayed["recipient"] == id_a

    def test_topology_mismatch(self, client):
        session_id = random_session_id()
        with client.websocket_connect("/many-to-many") as a, \
                client.websocket_connect("/one-to-one") as b:
            join(a, session_id)
            b.send_json({"type": "join", "session_id": session_id})

            assert expect(b, "error")["code"] == CLOSE_TOPOLOGY_MISMATCH
            assert expect_close(b) == CLOSE_TOPOLOGY_MISMATCH


class TestProtocolErrors:

    def test_signal_before_join(self, client):
        with client.websocket_connect("/many-to-many") as ws:
            ws.send_json({"type": "signal", "recipient": 1, "payload": "x"})

            assert expect(ws, "error")["code"] == CLOSE_PROTOCOL_ERROR
            assert expect_close(ws) == CLOSE_PROTOCOL_ERROR

    def test_malformed_frame(self, client):
        with client.websocket_connect("/one-to-many") as ws:
            ws.send_text("definitely not json")

            assert expect_close(ws) == CLOSE_PROTOCOL_ERROR

    def test_leave(self, client):
        with client.websocket_connect("/many-to-many") as ws:
            join(ws, random_session_id())
            ws.send_json({"type": "leave"})

            assert expect_close(ws) == 1000


# =============================================================================
# Transport adapter
# =============================================================================

def create_mock_websocket(*messages):
    ws = MagicMock()
    ws.receive = AsyncMock(side_effect=list(messages))
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    ws.application_state = WebSocketState.CONNECTED
    ws.client_state = WebSocketState.CONNECTED
    ws.client = MagicMock(host="10.0.0.1", port=50000)
    return ws


class TestWebSocketTransport:

    @pytest.mark.asyncio
    async def test_receive_text_and_bytes(self):
        ws = create_mock_websocket(
            {"type": "websocket.receive", "text": "héllo"},
            {"type": "websocket.receive", "bytes": b"\x01\x02"},
        )
        transport = WebSocketTransport(ws)

        assert await transport.receive() == "héllo"
        assert await transport.receive() == b"\x01\x02"
        assert ws.receive.await_count == 2

    @pytest.mark.asyncio
    async def test_receive_disconnect(self):
        ws = create_mock_websocket({"type": "websocket.disconnect", "code": 1001})
        transport = WebSocketTransport(ws)

        assert await transport.receive() is None
        assert await transport.receive() is None
        assert not transport.is_open
        ws.receive.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_text(self):
        ws = create_mock_websocket()
        transport = WebSocketTransport(ws)

        await transport.send_text('{"type": "peer_left"}')

        ws.send_text.assert_awaited_once_with('{"type": "peer_left"}')

    @pytest.mark.asyncio
    async def test_close_once(self):
        ws = create_mock_websocket()
        transport = WebSocketTransport(ws)

        await transport.close(4003, "host left")
        await transport.close(1000)

        ws.close.assert_awaited_once_with(code=4003, reason="host left")
        with pytest.raises(RuntimeError):
            await transport.send_text("{}")

    @pytest.mark.asyncio
    async def test_close_after_disconnect(self):
        ws = create_mock_websocket()
        ws.application_state = WebSocketState.DISCONNECTED
        transport = WebSocketTransport(ws)

        await transport.close(1000)

        ws.close.assert_not_awaited()

    def test_client_address(self):
        transport = WebSocketTransport(create_mock_websocket())

        assert transport.client == "10.0.0.1:50000"
        assert transport.is_open
