"""
Many-to-Many Client Demo

Connects three Python peers to a running relay and walks them through the
offer/answer/candidate exchange of a full mesh. No media is involved; the
payloads are placeholder SDP strings.

Usage:
    peerrelay --bind 127.0.0.1:9001 &
    python examples/mesh_client_demo.py ws://127.0.0.1:9001
"""

import asyncio
import json
import sys

from peerrelay import EventSink, SignalingClient, Topology


class MeshPeer(EventSink):
    """Offers to every peer that was already in the room when it joined."""

    def __init__(self, name: str):
        self.name = name
        self.client: SignalingClient = None

    def on_open(self, joined):
        print(f"[{self.name}] joined as peer {joined.peer_id}, existing peers: {joined.peers}")
        for peer_id in joined.peers:
            asyncio.create_task(self.client.send(
                {"type": "offer", "sdp": f"v=0 offer from {self.name}"}, recipient=peer_id
            ))

    def on_message(self, sender, payload):
        data = json.loads(payload)
        print(f"[{self.name}] {data['type']} from peer {sender}")
        if data["type"] == "offer":
            asyncio.create_task(self.client.send(
                {"type": "answer", "sdp": f"v=0 answer from {self.name}"}, recipient=sender
            ))
        elif data["type"] == "answer":
            asyncio.create_task(self.client.send(
                {"type": "candidate", "candidate": "candidate:1 1 UDP 2122252543 192.0.2.1 54400 typ host"},
                recipient=sender,
            ))

    def on_peer_joined(self, peer_id):
        print(f"[{self.name}] peer {peer_id} joined")

    def on_peer_left(self, peer_id):
        print(f"[{self.name}] peer {peer_id} left")

    def on_close(self, code, reason):
        print(f"[{self.name}] connection closed ({code} {reason})")


async def main(url: str):
    tasks = []
    clients = []

    for name in ("alice", "bob", "carol"):
        peer = MeshPeer(name)
        client = SignalingClient(url, Topology.MANY_TO_MANY, "mesh-demo", peer)
        peer.client = client
        await client.connect()
        tasks.append(asyncio.create_task(client.run()))
        clients.append(client)
        await asyncio.sleep(0.2)

    await asyncio.sleep(1.0)

    for client in clients:
        await client.leave()
    await asyncio.gather(*tasks)


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://127.0.0.1:9001"))
