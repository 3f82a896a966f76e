"""pytest configuration and fixtures for relay tests."""

import asyncio
import json
import random
import string
from typing import List, Optional, Union

import pytest
import pytest_asyncio

from peerrelay.config import RelayConfig
from peerrelay.signaling.coordinator import SessionCoordinator
from peerrelay.signaling.types import Topology


def random_string(length: int = 10) -> str:
    """Generate a random string."""
    return ''.join(random.choices(string.ascii_letters + string.digits, k=length))


def random_session_id() -> str:
    """Generate a random session ID."""
    return f"session-{random_string(8)}"


class FakeTransport:
    """In-memory stand-in for an accepted WebSocket."""

    def __init__(self):
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed: Optional[tuple] = None
        self.close_event = asyncio.Event()

    async def receive(self) -> Optional[Union[str, bytes]]:
        return await self.inbox.get()

    async def send_text(self, text: str) -> None:
        self.sent.append(text)
        self.outbox.put_nowait(json.loads(text))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = (code, reason)
        self.close_event.set()


class Peer:
    """Test-side handle on one connection served by the coordinator."""

    def __init__(self, transport: FakeTransport, task: asyncio.Task):
        self.transport = transport
        self.task = task
        self.peer_id: Optional[int] = None
        self.joined: Optional[dict] = None

    def feed(self, message: Union[dict, str, bytes]) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self.transport.inbox.put_nowait(message)

    def join(self, session_id: str) -> None:
        self.feed({"type": "join", "session_id": session_id})

    def send(self, payload: str, recipient: Optional[int] = None) -> None:
        message = {"type": "signal", "payload": payload}
        if recipient is not None:
            message["recipient"] = recipient
        self.feed(message)

    def leave(self) -> None:
        self.feed({"type": "leave"})

    def disconnect(self) -> None:
        self.transport.inbox.put_nowait(None)

    async def next_frame(self, timeout: float = 1.0) -> dict:
        return await asyncio.wait_for(self.transport.outbox.get(), timeout)

    async def expect(self, frame_type: str, timeout: float = 1.0) -> dict:
        frame = await self.next_frame(timeout)
        assert frame["type"] == frame_type, f"expected {frame_type}, got {frame}"
        return frame

    async def assert_silent(self, delay: float = 0.05) -> None:
        await asyncio.sleep(delay)
        assert self.transport.outbox.empty(), \
            f"unexpected frame: {self.transport.outbox.get_nowait()}"

    async def wait_closed(self, timeout: float = 1.0) -> tuple:
        await asyncio.wait_for(self.transport.close_event.wait(), timeout)
        return self.transport.closed

    async def wait_finished(self, timeout: float = 1.0) -> None:
        await asyncio.wait_for(asyncio.shield(self.task), timeout)


class RelayHarness:
    """Coordinator plus helpers to open fake peer connections."""

    def __init__(self, config: Optional[RelayConfig] = None):
        self.coordinator = SessionCoordinator(config)
        self.peers: List[Peer] = []

    def open(self, topology: Topology) -> Peer:
        transport = FakeTransport()
        task = asyncio.create_task(self.coordinator.handle(transport, topology))
        peer = Peer(transport, task)
        self.peers.append(peer)
        return peer

    async def join(self, topology: Topology, session_id: str) -> Peer:
        peer = self.open(topology)
        peer.join(session_id)
        peer.joined = await peer.expect("joined")
        peer.peer_id = peer.joined["peer_id"]
        return peer

    async def settle(self, delay: float = 0.02) -> None:
        await asyncio.sleep(delay)

    async def shutdown(self) -> None:
        for peer in self.peers:
            peer.disconnect()
        tasks = [peer.task for peer in self.peers]
        if tasks:
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), 2.0)


@pytest_asyncio.fixture
async def relay():
    """Relay harness with default configuration."""
    harness = RelayHarness()
    yield harness
    await harness.shutdown()


@pytest_asyncio.fixture
async def make_relay():
    """Factory for relay harnesses with custom configuration."""
    harnesses: List[RelayHarness] = []

    def _factory(**config) -> RelayHarness:
        harness = RelayHarness(RelayConfig(**config))
        harnesses.append(harness)
        return harness

    yield _factory

    for harness in harnesses:
        await harness.shutdown()


@pytest.fixture
def session_id() -> str:
    return random_session_id()
