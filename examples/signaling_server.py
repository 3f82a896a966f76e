"""
WebRTC Signaling Server Demo

Runs the relay with a small browser page for a one-to-one video call.

Features:
- /one-to-one, /one-to-many and /many-to-many signaling endpoints
- SDP offer/answer and ICE candidate relay
- /rtc/demo page: open it in two browser windows with the same room name
"""

import logging

import uvicorn
from fastapi.responses import HTMLResponse

from peerrelay import RelayConfig
from peerrelay.http import create_app


config = RelayConfig(port=9001, idle_timeout=600)
app = create_app(config)


DEMO_PAGE = """
<!DOCTYPE html>
<html>
<head><title>peerrelay one-to-one demo</title></head>
<body>
<h2>peerrelay one-to-one demo</h2>
<input id="room" value="demo-room"> <button onclick="start()">Join</button>
<div><video id="local" autoplay muted playsinline width="320"></video>
<video id="remote" autoplay playsinline width="320"></video></div>
<pre id="log"></pre>
<script>
const log = (m) => document.getElementById('log').textContent += m + '\\n';
let ws, pc;

async function start() {
    const stream = await navigator.mediaDevices.getUserMedia({video: true, audio: true});
    document.getElementById('local').srcObject = stream;

    pc = new RTCPeerConnection({iceServers: [{urls: 'stun:stun.l.google.com:19302'}]});
    stream.getTracks().forEach(t => pc.addTrack(t, stream));
    pc.ontrack = (e) => document.getElementById('remote').srcObject = e.streams[0];
    pc.onicecandidate = (e) => {
        if (e.candidate) send({candidate: e.candidate});
    };

    ws = new WebSocket(`ws://${location.host}/one-to-one`);
    ws.onopen = () => ws.send(JSON.stringify({type: 'join', session_id: room.value}));
    ws.onclose = (e) => log(`closed ${e.code} ${e.reason}`);
    ws.onmessage = async (e) => {
        const msg = JSON.parse(e.data);
        log(msg.type);
        if (msg.type === 'peer_joined') {
            // The peer already waiting makes the offer
            await pc.setLocalDescription(await pc.createOffer());
            send({sdp: pc.localDescription});
        } else if (msg.type === 'signal') {
            const data = JSON.parse(msg.payload);
            if (data.sdp) {
                await pc.setRemoteDescription(data.sdp);
                if (data.sdp.type === 'offer') {
                    await pc.setLocalDescription(await pc.createAnswer());
                    send({sdp: pc.localDescription});
                }
            } else if (data.candidate) {
                await pc.addIceCandidate(data.candidate);
            }
        }
    };
}

function send(data) {
    ws.send(JSON.stringify({type: 'signal', payload: JSON.stringify(data)}));
}
</script>
</body>
</html>
"""


@app.get("/rtc/demo", response_class=HTMLResponse)
async def demo_page():
    return DEMO_PAGE


def main():
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")

    print()
    print("peerrelay signaling demo")
    print()
    print(f"Relay listening on ws://localhost:{config.port}")
    print()
    print("Endpoints:")
    print("   WS  /one-to-one    - two-peer calls")
    print("   WS  /one-to-many   - host streaming to clients")
    print("   WS  /many-to-many  - full mesh")
    print("   GET /stats         - statistics")
    print("   GET /rtc/demo      - demo page")
    print()
    print(f"Open http://localhost:{config.port}/rtc/demo in 2 browser windows")
    print()

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level)


if __name__ == "__main__":
    main()
