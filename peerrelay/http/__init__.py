"""
peerrelay HTTP Server Module

FastAPI application exposing one WebSocket endpoint per topology:
- /one-to-one
- /one-to-many
- /many-to-many
plus /health and /stats, served by uvicorn.
"""

from .server import create_app, run
from .websocket import WebSocketTransport

__all__ = [
    'create_app',
    'run',
    'WebSocketTransport',
]
